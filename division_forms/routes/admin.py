from flask import Blueprint, request, current_app
from flask_login import login_required
from division_forms.models import ROLE_SUPERADMIN, ROLE_USER
from division_forms.acl import require_role
from division_forms.errors import BadRequest
from division_forms.services.user_service import UserService
from division_forms.utils import api_response, get_json_body, parse_id, paginate_params, page_envelope

admin_bp = Blueprint('admin', __name__, url_prefix='/admin')

@admin_bp.before_request
@login_required
@require_role(ROLE_SUPERADMIN)
def check_admin_access():
    """Every /admin route is superadmin only."""
    return None

@admin_bp.route('/users', methods=['GET'])
def users():
    q = (request.args.get('q') or '').strip()
    page, limit = paginate_params(request.args, default_limit=50)
    items, total = UserService.search_users(q, page, limit)
    return api_response(data=page_envelope([u.to_dict() for u in items], page, limit, total))

@admin_bp.route('/users/<user_id>', methods=['GET'])
def get_user(user_id):
    user = UserService.get_user(parse_id(user_id))
    return api_response(data=user.to_dict())

@admin_bp.route('/users', methods=['POST'])
def new_user():
    data = get_json_body()
    full_name = data.get('full_name')
    email = data.get('email')
    password = data.get('password')
    if not full_name or not email or not password:
        raise BadRequest("full_name, email, password are required")

    user = UserService.create_user(full_name, email, password, data.get('role') or ROLE_USER)
    return api_response(data=user.to_dict(), status=201)

@admin_bp.route('/users/<user_id>', methods=['PATCH'])
def edit_user(user_id):
    data = get_json_body()
    user = UserService.update_profile(parse_id(user_id), data.get('full_name'), data.get('email'))
    return api_response(data=user.to_dict())

@admin_bp.route('/users/<user_id>/role', methods=['PATCH'])
def change_role(user_id):
    data = get_json_body()
    user = UserService.change_role(parse_id(user_id), data.get('role'))
    current_app.logger.info(f"User {user.id} role set to {user.role}")
    return api_response(data=user.to_dict())

@admin_bp.route('/users/<user_id>/password', methods=['PATCH'])
def reset_password(user_id):
    data = get_json_body()
    password = data.get('password')
    if not isinstance(password, str) or not password:
        raise BadRequest("Password is required")
    UserService.reset_password(parse_id(user_id), password)
    return api_response(data={'message': 'Password updated'})

@admin_bp.route('/users/<user_id>', methods=['DELETE'])
def delete_user(user_id):
    deleted_id = UserService.delete_user(parse_id(user_id))
    current_app.logger.info(f"User {deleted_id} deleted")
    return api_response(data={'id': deleted_id, 'message': 'User deleted'})
