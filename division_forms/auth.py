from datetime import timedelta
from flask import Blueprint, current_app
from flask_login import login_required, current_user
from werkzeug.security import check_password_hash, generate_password_hash
import jwt
from division_forms.models import db, User, get_now_utc
from division_forms.errors import BadRequest
from division_forms.services.user_service import UserService, normalize_email
from division_forms.utils import api_response, get_json_body

PASSWORD_LENGTH = 8

auth = Blueprint('auth', __name__, url_prefix='/auth')


def issue_token(user):
    payload = {
        'user_id': user.id,
        'exp': get_now_utc() + timedelta(days=current_app.config['JWT_EXPIRES_DAYS'])
    }
    return jwt.encode(payload, current_app.config['JWT_SECRET'], algorithm="HS256")


def load_user_from_request(request):
    """Flask-Login request loader: resolves `Authorization: Bearer <jwt>`."""
    auth_header = request.headers.get('Authorization', '')
    if not auth_header.startswith('Bearer '):
        return None
    token = auth_header.split(' ', 1)[1].strip()
    try:
        data = jwt.decode(token, current_app.config['JWT_SECRET'], algorithms=["HS256"])
    except jwt.InvalidTokenError as e:
        current_app.logger.info(f"Rejected bearer token: {e}")
        return None
    user_id = data.get('user_id')
    if not isinstance(user_id, int):
        return None
    return db.session.get(User, user_id)


def check_password_rule(password, field='password'):
    if not isinstance(password, str) or len(password) != PASSWORD_LENGTH:
        raise BadRequest(f"{field} must be exactly {PASSWORD_LENGTH} characters")


def _session_payload(user):
    return {'token': issue_token(user), 'user': user.to_dict()}


@auth.route('/register', methods=['POST'])
def register():
    data = get_json_body()
    full_name = data.get('full_name')
    email = data.get('email')
    password = data.get('password')

    if not full_name or not email or not password:
        raise BadRequest("full_name, email, password are required")
    check_password_rule(password)

    # Public sign-up never grants elevated roles
    user = UserService.create_user(full_name, email, password)
    return api_response(data=_session_payload(user), status=201)


@auth.route('/login', methods=['POST'])
def login():
    data = get_json_body()
    email = normalize_email(data.get('email'))
    password = data.get('password') or ''

    user = User.query.filter_by(email=email).first()
    if not user or not check_password_hash(user.password_hash, password):
        current_app.logger.info(f"Login failed for {email}")
        raise BadRequest("Invalid credentials")

    return api_response(data=_session_payload(user))


@auth.route('/me', methods=['GET'])
@login_required
def me():
    return api_response(data=current_user.to_dict())


@auth.route('/profile', methods=['PATCH'])
@login_required
def update_profile():
    data = get_json_body()
    user = UserService.update_profile(current_user.id, data.get('full_name'), data.get('email'))
    return api_response(data=user.to_dict())


@auth.route('/password', methods=['PATCH'])
@login_required
def change_password():
    data = get_json_body()
    current_password = data.get('current_password')
    new_password = data.get('new_password')

    if not current_password or not new_password:
        raise BadRequest("current_password and new_password are required")
    check_password_rule(new_password, 'new_password')

    if not check_password_hash(current_user.password_hash, current_password):
        raise BadRequest("Current password is incorrect")

    current_user.password_hash = generate_password_hash(new_password)
    db.session.commit()
    return api_response(data={'ok': True})
