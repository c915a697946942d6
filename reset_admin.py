from deptportal import app, db
from deptportal.models import Profile
from werkzeug.security import generate_password_hash
import os
import secrets
import string


def generate_password(length: int = 16) -> str:
    alphabet = string.ascii_letters + string.digits
    return ''.join(secrets.choice(alphabet) for _ in range(length))


if __name__ == "__main__":
    email = (os.environ.get('ADMIN_EMAIL') or 'admin@dept.edu').strip().lower()
    new_pw = generate_password()
    with app.app_context():
        profile = Profile.query.filter_by(email=email).first()
        if not profile:
            profile = Profile(email=email, password_hash=generate_password_hash(new_pw), role='ADMIN')
            db.session.add(profile)
        else:
            profile.password_hash = generate_password_hash(new_pw)
            profile.role = 'ADMIN'
            profile.is_active = True
        db.session.commit()
    # Print only the password for easy copying
    print(new_pw)
