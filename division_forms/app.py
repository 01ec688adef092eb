import os
from dotenv import load_dotenv
load_dotenv() # Load env vars before anything else

from flask import Flask
from flask_login import LoginManager
from flask_migrate import Migrate
from werkzeug.exceptions import HTTPException
from werkzeug.middleware.proxy_fix import ProxyFix
from division_forms.models import db, User
from division_forms.errors import FormsError
from division_forms.services.validator_cache import ValidatorCache, NullValidatorCache
from division_forms.services.submission_service import SubmissionValidator
from division_forms.utils import api_response

def _env_bool(name, default):
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in ('1', 'true', 'yes', 'on')

def create_app(test_config=None):
    app = Flask(__name__)
    app.wsgi_app = ProxyFix(app.wsgi_app, x_for=1, x_proto=1, x_host=1, x_prefix=1)

    # --- CONFIGURATION ---
    app.config['SECRET_KEY'] = os.environ.get('SECRET_KEY', 'division-forms-dev-key')
    app.config['JWT_SECRET'] = os.environ.get('JWT_SECRET') or app.config['SECRET_KEY']
    app.config['JWT_EXPIRES_DAYS'] = int(os.environ.get('JWT_EXPIRES_DAYS', 7))

    database_url = os.environ.get('DATABASE_URL')
    if database_url and database_url.startswith("postgres://"):
        database_url = database_url.replace("postgres://", "postgresql://", 1)
    if not database_url:
        os.makedirs(app.instance_path, exist_ok=True)
        database_url = f"sqlite:///{os.path.join(app.instance_path, 'division_forms.db')}"
    app.config['SQLALCHEMY_DATABASE_URI'] = database_url
    app.config['SQLALCHEMY_TRACK_MODIFICATIONS'] = False

    app.config['MAX_CONTENT_LENGTH'] = 1024 * 1024 # 1 MB request bodies
    app.config['PUBLISH_MAX_ATTEMPTS'] = int(os.environ.get('PUBLISH_MAX_ATTEMPTS', 5))
    app.config['MAX_SCHEMA_BYTES'] = int(os.environ.get('MAX_SCHEMA_BYTES', 256 * 1024))
    app.config['MAX_SCHEMA_DEPTH'] = int(os.environ.get('MAX_SCHEMA_DEPTH', 32))
    app.config['VALIDATOR_CACHE_ENABLED'] = _env_bool('VALIDATOR_CACHE_ENABLED', True)

    if test_config:
        app.config.update(test_config)

    # --- INITIALIZE EXTENSIONS ---
    db.init_app(app)
    Migrate(app, db)

    login_manager = LoginManager()
    login_manager.init_app(app)

    @login_manager.user_loader
    def load_user(user_id):
        return db.session.get(User, int(user_id))

    from division_forms.auth import load_user_from_request
    login_manager.request_loader(load_user_from_request)

    @login_manager.unauthorized_handler
    def unauthorized():
        return api_response(success=False, error={'code': 'unauthorized', 'message': 'Missing or invalid token'}, status=401)

    # One compiled-validator cache per process, shared by every request
    cache = ValidatorCache() if app.config['VALIDATOR_CACHE_ENABLED'] else NullValidatorCache()
    app.extensions['validator_cache'] = cache
    app.extensions['submission_validator'] = SubmissionValidator(cache)

    # --- ERROR HANDLERS ---
    @app.errorhandler(FormsError)
    def forms_error(error):
        return api_response(success=False, error=error.to_dict(), status=error.status_code)

    @app.errorhandler(HTTPException)
    def http_error(error):
        code = (error.name or 'error').lower().replace(' ', '_')
        return api_response(success=False, error={'code': code, 'message': error.description}, status=error.code)

    @app.errorhandler(Exception)
    def internal_error(error):
        # Fail-safe rollback
        db.session.rollback()
        app.logger.exception(f"Unhandled error: {error}")
        return api_response(success=False, error={'code': 'internal_error', 'message': 'Internal Server Error'}, status=500)

    @app.route('/')
    def index():
        return api_response(data={'ok': True, 'name': 'division-forms-backend'})

    # --- REGISTER BLUEPRINTS ---
    from division_forms.auth import auth as auth_blueprint
    from division_forms.routes.meta import meta_bp
    from division_forms.routes.access import access_bp
    from division_forms.routes.forms import forms_bp
    from division_forms.routes.admin import admin_bp

    app.register_blueprint(auth_blueprint)
    app.register_blueprint(meta_bp)
    app.register_blueprint(access_bp)
    app.register_blueprint(forms_bp)
    app.register_blueprint(admin_bp)

    from division_forms.commands import register_commands
    register_commands(app)

    # --- TABLE CREATION ---
    with app.app_context():
        db.create_all()
        app.logger.info("Tables created (if missing).")

    return app
