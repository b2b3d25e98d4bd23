from flask_sqlalchemy import SQLAlchemy
from flask_migrate import Migrate
from flask_jwt_extended import JWTManager
from flask_bcrypt import Bcrypt

# Flask extension instances, bound to the application in app.py.
# Cached rows outlive the request session, so they must not expire on commit.
db = SQLAlchemy(session_options={'expire_on_commit': False})
migrate = Migrate()
jwt = JWTManager()
bcrypt = Bcrypt()
