from flask import Blueprint, request
from flask_login import login_required, current_user
from division_forms.models import ROLE_SUPERADMIN
from division_forms.acl import require_role
from division_forms.errors import BadRequest, NotFound
from division_forms.services.access_service import AccessService
from division_forms.utils import api_response, get_json_body, parse_id, parse_id_list

access_bp = Blueprint('access', __name__, url_prefix='/access')

def _grant_target(source):
    try:
        user_id = parse_id(source.get('user_id'), 'user_id')
        division_id = parse_id(source.get('division_id'), 'division_id')
    except BadRequest:
        raise BadRequest("user_id and division_id are required")
    return user_id, division_id

@access_bp.route('/grant', methods=['POST'])
@login_required
@require_role(ROLE_SUPERADMIN)
def grant():
    """Upserts the (user, division) grant and replaces its screens."""
    data = get_json_body()
    user_id, division_id = _grant_target(data)
    screen_ids = parse_id_list(data.get('screen_ids'), 'screen_ids')

    grant = AccessService.replace_grant(user_id, division_id, screen_ids)
    return api_response(data=grant.to_dict())

@access_bp.route('/grant/screens', methods=['PATCH'])
@login_required
@require_role(ROLE_SUPERADMIN)
def update_grant_screens():
    """
    Body: { user_id, division_id, op: "set" | "add" | "remove", screen_ids: [..] }
    Only "set" creates a missing grant.
    """
    data = get_json_body()
    user_id, division_id = _grant_target(data)
    op = data.get('op', 'set')
    screen_ids = parse_id_list(data.get('screen_ids', []), 'screen_ids')

    grant = AccessService.update_grant_screens(user_id, division_id, op, screen_ids)
    if grant is None:
        raise NotFound("Grant not found")
    return api_response(data=grant.to_dict())

@access_bp.route('/grant', methods=['DELETE'])
@login_required
@require_role(ROLE_SUPERADMIN)
def revoke():
    user_id, division_id = _grant_target(request.args)
    grant_id = AccessService.revoke_grant(user_id, division_id)
    if grant_id is None:
        raise NotFound("Grant not found")
    return api_response(data={'id': grant_id, 'message': 'Grant removed'})

@access_bp.route('/grants-by-user', methods=['GET'])
@login_required
@require_role(ROLE_SUPERADMIN)
def grants_by_user():
    user_id = parse_id(request.args.get('user_id'), 'user_id')
    grants = AccessService.grants_for_user(user_id)
    return api_response(data=[g.to_dict(expand=True) for g in grants])

@access_bp.route('/my-access', methods=['GET'])
@login_required
def my_access():
    grants = AccessService.grants_for_user(current_user.id)
    return api_response(data=[g.to_dict(expand=True) for g in grants])
