import os
import logging
from flask import Flask
from flask_sqlalchemy import SQLAlchemy
from deptportal.config import DevelopmentConfig, ProductionConfig, TestingConfig
from datetime import timedelta
from werkzeug.security import generate_password_hash

logger = logging.getLogger(__name__)

app = Flask(__name__, instance_relative_config=True)

# Select config based on FLASK_ENV
env = os.environ.get("FLASK_ENV", "development").lower()
if env == "production":
    app.config.from_object(ProductionConfig)
elif env == "testing":
    app.config.from_object(TestingConfig)
else:
    app.config.from_object(DevelopmentConfig)

# Compute DB URI for development using instance path
if env not in ("production", "testing"):
    os.makedirs(app.instance_path, exist_ok=True)
    app.config['SQLALCHEMY_DATABASE_URI'] = DevelopmentConfig.database_uri(app.instance_path)

db = SQLAlchemy(app)

# Configure session lifetime
timeout_minutes = app.config.get('SESSION_TIMEOUT_MINUTES', 120)
try:
    app.permanent_session_lifetime = timedelta(minutes=int(timeout_minutes))
except (TypeError, ValueError):
    app.permanent_session_lifetime = timedelta(minutes=120)


def bootstrap_admin():
    """Create the admin profile named by ADMIN_EMAIL if it does not exist yet."""
    from deptportal.models import Profile
    admin_email = os.environ.get("ADMIN_EMAIL")
    if not admin_email:
        return None
    admin_email = admin_email.strip().lower()
    existing = Profile.query.filter_by(email=admin_email).first()
    if existing:
        return existing
    admin_pw_hash = os.environ.get("ADMIN_PASSWORD_HASH")
    admin_pw_plain = os.environ.get("ADMIN_PASSWORD") or "admin"
    profile = Profile(
        email=admin_email,
        role="ADMIN",
        password_hash=admin_pw_hash or generate_password_hash(admin_pw_plain),
    )
    db.session.add(profile)
    db.session.commit()
    logger.info(f"Created admin profile {admin_email}")
    return profile


if app.config.get('DATABASE_CONFIGURED'):
    from deptportal import models  # noqa: F401
    with app.app_context():
        db.create_all()
        try:
            bootstrap_admin()
        except Exception:
            db.session.rollback()
            logger.exception("Failed to bootstrap admin profile")
else:
    logger.warning("DATABASE_URI is not set; API endpoints will answer 503")

from deptportal import routes, api  # noqa: E402,F401
