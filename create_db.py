from deptportal import app, db, bootstrap_admin
from deptportal import models  # noqa: F401

with app.app_context():
    db.create_all()
    profile = bootstrap_admin()
    if profile:
        print(f"Admin profile: {profile.email}")
