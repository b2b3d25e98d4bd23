import os

from flask import current_app

from forumapi.extensions import db, bcrypt
from forumapi.models import Folder, User, FOLDER_TYPE_ADMIN, FOLDER_TYPE_NORMAL

DEFAULT_FOLDERS = [
    ('general', 'General discussion', FOLDER_TYPE_NORMAL),
    ('help', 'Help and feedback', FOLDER_TYPE_NORMAL),
    ('moderators', 'Moderators only', FOLDER_TYPE_ADMIN),
]


def initialize_database():
    """Creates the default folders and the admin account if they are missing."""
    current_app.logger.info("Initializing forum database")

    try:
        for order, (folder_key, description, folder_type) in enumerate(DEFAULT_FOLDERS):
            if not Folder.query.filter_by(folder_key=folder_key).first():
                db.session.add(Folder(folder_key=folder_key, description=description,
                                      type=folder_type, display_order=order))
                current_app.logger.info(f"Created folder '{folder_key}'")
        db.session.commit()

        admin_email = os.environ.get('ADMIN_EMAIL', 'admin@example.com')
        admin_user = User.query.filter_by(email=admin_email).first()

        if not admin_user:
            admin_password = os.environ.get('ADMIN_PASSWORD')
            if not admin_password:
                raise ValueError("ADMIN_PASSWORD environment variable is not set")

            db.session.add(User(
                username=os.environ.get('ADMIN_USERNAME', 'admin'),
                email=admin_email,
                password=bcrypt.generate_password_hash(admin_password).decode('utf-8'),
                is_admin=True,
                signup_confirmed=True,
            ))
            db.session.commit()
            current_app.logger.info(f"Created admin account {admin_email}")
        elif not admin_user.is_admin:
            admin_user.is_admin = True
            db.session.commit()
            current_app.logger.info(f"Granted admin rights to existing account {admin_email}")

    except Exception as e:
        db.session.rollback()
        current_app.logger.error(f"Database initialization failed: {e}", exc_info=True)
        raise
    finally:
        db.session.close()
