import os
import logging
from logging.handlers import RotatingFileHandler

from dotenv import load_dotenv
from flask import Flask, request, jsonify
from flask_cors import CORS
from sqlalchemy.exc import SQLAlchemyError
from werkzeug.middleware.proxy_fix import ProxyFix

from forumapi.errors import ForumError

load_dotenv()


def _database_url():
    mysql_url = os.environ.get("MYSQL_URL")
    if not mysql_url:
        required_vars = ["MYSQL_USER", "MYSQL_HOST", "MYSQL_PORT", "MYSQL_DATABASE"]
        missing_vars = [var for var in required_vars if not os.environ.get(var)]
        if missing_vars:
            raise ValueError(f"Missing database environment variables: {', '.join(missing_vars)}")

        mysql_user = os.environ.get("MYSQL_USER")
        mysql_password = os.environ.get("MYSQL_PASSWORD", "")
        mysql_host = os.environ.get("MYSQL_HOST")
        mysql_port = os.environ.get("MYSQL_PORT")
        mysql_database = os.environ.get("MYSQL_DATABASE")
        mysql_url = f"mysql+pymysql://{mysql_user}:{mysql_password}@{mysql_host}:{mysql_port}/{mysql_database}"

    if mysql_url.startswith('mysql://'):
        return mysql_url.replace('mysql://', 'mysql+pymysql://', 1)
    return mysql_url


def create_app(test_config=None):
    app = Flask(__name__)

    # --- configuration ---
    app.config['SECRET_KEY'] = os.environ.get('SECRET_KEY', 'dev')
    app.config['JWT_SECRET_KEY'] = os.environ.get('JWT_SECRET_KEY')
    app.config['SQLALCHEMY_TRACK_MODIFICATIONS'] = False
    app.config['SMTP_HOST'] = os.environ.get('SMTP_HOST')
    app.config['SMTP_PORT'] = int(os.environ.get('SMTP_PORT', 587))
    app.config['SMTP_USER'] = os.environ.get('SMTP_USER')
    app.config['SMTP_PASS'] = os.environ.get('SMTP_PASS')
    app.config['MAIL_FROM'] = os.environ.get('MAIL_FROM')
    app.config['SITE_URL'] = os.environ.get('SITE_URL', 'http://localhost:5000')
    app.config['PASSWORD_RESET_TTL_HOURS'] = int(os.environ.get('PASSWORD_RESET_TTL_HOURS', 1))
    app.config['SIGNUP_CONFIRMATION_TTL_HOURS'] = int(os.environ.get('SIGNUP_CONFIRMATION_TTL_HOURS', 72))

    if test_config:
        app.config.from_mapping(test_config)

    # --- logging ---
    if not app.testing:
        if not os.path.exists('logs'):
            os.mkdir('logs')
        file_handler = RotatingFileHandler('logs/forumapi.log', maxBytes=10240, backupCount=10)
        file_handler.setFormatter(logging.Formatter(
            '%(asctime)s %(levelname)s: %(message)s [in %(pathname)s:%(lineno)d]'))
        file_handler.setLevel(logging.INFO)
        app.logger.addHandler(file_handler)
    app.logger.setLevel(logging.INFO)
    app.logger.info('Forum API startup')

    if not app.config.get('JWT_SECRET_KEY'):
        app.logger.warning('JWT_SECRET_KEY is not set, using the development key')
        app.config['JWT_SECRET_KEY'] = 'local-dev-jwt-secret-key-for-testing'

    # --- database ---
    if not app.config.get('SQLALCHEMY_DATABASE_URI'):
        app.config['SQLALCHEMY_DATABASE_URI'] = _database_url()

    app.wsgi_app = ProxyFix(app.wsgi_app, x_for=1, x_proto=1, x_host=1, x_prefix=1)
    CORS(app, supports_credentials=True, resources={r"/api/*": {"origins": "*"}})

    # --- extensions ---
    from forumapi.extensions import db, migrate, jwt, bcrypt
    from forumapi.caches import user_cache, folder_cache, discussion_cache
    db.init_app(app)
    migrate.init_app(app, db, directory=os.path.join(os.path.dirname(__file__), 'migrations'))
    jwt.init_app(app)
    bcrypt.init_app(app)
    user_cache.init_app(app)
    folder_cache.init_app(app)
    discussion_cache.init_app(app)

    # --- API blueprints ---
    from forumapi.routes.auth_routes import auth_bp
    from forumapi.routes.user_routes import user_bp
    from forumapi.routes.subscription_routes import subscription_bp
    from forumapi.routes.admin_routes import admin_bp

    app.register_blueprint(auth_bp, url_prefix='/api/auth')
    app.register_blueprint(user_bp, url_prefix='/api/user')
    app.register_blueprint(subscription_bp, url_prefix='/api/subscriptions')
    app.register_blueprint(admin_bp, url_prefix='/api/admin')

    # --- CLI commands ---
    @app.cli.command("init-db")
    def init_db_command():
        with app.app_context():
            db.create_all()
            from forumapi.initialize_forum import initialize_database
            initialize_database()

    # --- error handlers ---
    @app.errorhandler(ForumError)
    def handle_forum_error(e):
        if e.status_code >= 500:
            app.logger.error(f"{request.method} {request.path} failed: {e.message}")
        return jsonify(e.to_dict()), e.status_code

    @app.errorhandler(SQLAlchemyError)
    def handle_database_error(e):
        db.session.rollback()
        app.logger.error(f"Database error on {request.method} {request.path}: {e}", exc_info=True)
        return jsonify({'message': 'A database error occurred'}), 500

    @app.errorhandler(404)
    def page_not_found(e):
        if request.path.startswith('/api/'):
            return jsonify(error="Not found"), 404
        return e

    return app


if __name__ == '__main__':
    app = create_app()
    port = int(os.environ.get('PORT', 5000))
    app.run(host='0.0.0.0', port=port, debug=True)
