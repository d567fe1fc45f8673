#!/usr/bin/env python3
"""
Build script for deployment.
This script initializes the database and creates the first administrator.
"""
import logging

from auth import hash_password
from models import UserAccount, db

logger = logging.getLogger(__name__)


def create_default_admin(app):
    """Create the administrator from DEFAULT_ADMIN_EMAIL / DEFAULT_ADMIN_PASSWORD when none exists."""
    if UserAccount.query.filter_by(role='admin').first() is not None:
        logger.info("Administrator account already present")
        return None

    email = app.config.get('DEFAULT_ADMIN_EMAIL')
    password = app.config.get('DEFAULT_ADMIN_PASSWORD')
    if not email or not password:
        logger.warning("DEFAULT_ADMIN_EMAIL/DEFAULT_ADMIN_PASSWORD not set, skipping administrator creation")
        return None

    admin = UserAccount(email=email.strip().lower(), role='admin', password_hash=hash_password(password))
    db.session.add(admin)
    db.session.commit()
    logger.info("Created administrator account %s", admin.email)
    return admin


def initialize_database(app):
    """Initialize database for production deployment."""
    with app.app_context():
        logger.info("Creating database tables...")
        db.create_all()

        logger.info("Creating default admin user...")
        create_default_admin(app)

        logger.info("Database initialization completed successfully!")


if __name__ == "__main__":
    from app import create_app
    initialize_database(create_app())
