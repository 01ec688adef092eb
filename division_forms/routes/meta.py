from flask import Blueprint, current_app
from flask_login import login_required
from division_forms.models import db, Division, Screen, ROLE_SUPERADMIN, ROLE_ADMIN
from division_forms.acl import require_role
from division_forms.errors import BadRequest, NotFound
from division_forms.services.meta_service import MetaService
from division_forms.services.form_version_service import FormVersionService
from division_forms.utils import api_response, get_json_body, parse_id

meta_bp = Blueprint('meta', __name__, url_prefix='/meta')

# --- Divisions ---

@meta_bp.route('/divisions', methods=['POST'])
@login_required
@require_role(ROLE_SUPERADMIN)
def create_division():
    data = get_json_body()
    division = MetaService.create_division(data.get('name'), data.get('code'))
    return api_response(data=division.to_dict(), status=201)

@meta_bp.route('/divisions', methods=['GET'])
@login_required
def list_divisions():
    divisions = Division.query.order_by(Division.name).all()
    return api_response(data=[d.to_dict() for d in divisions])

@meta_bp.route('/divisions/<division_id>', methods=['DELETE'])
@login_required
@require_role(ROLE_SUPERADMIN)
def delete_division(division_id):
    division_id = parse_id(division_id, 'division id')
    removed = MetaService.delete_division(division_id)
    removed['cached_validators'] = current_app.extensions['validator_cache'].discard_for(division_id=division_id)
    current_app.logger.info(f"Division {division_id} deleted: {removed}")
    return api_response(data={'id': division_id, 'removed': removed})

# --- Screens ---

@meta_bp.route('/screens', methods=['POST'])
@login_required
@require_role(ROLE_SUPERADMIN)
def create_screen():
    data = get_json_body()
    screen = MetaService.create_screen(data.get('key'), data.get('title'))
    return api_response(data=screen.to_dict(), status=201)

@meta_bp.route('/screens', methods=['GET'])
@login_required
def list_screens():
    screens = Screen.query.order_by(Screen.key).all()
    return api_response(data=[s.to_dict() for s in screens])

@meta_bp.route('/screens/<screen_id>', methods=['DELETE'])
@login_required
@require_role(ROLE_SUPERADMIN)
def delete_screen(screen_id):
    screen_id = parse_id(screen_id, 'screen id')
    removed = MetaService.delete_screen(screen_id)
    removed['cached_validators'] = current_app.extensions['validator_cache'].discard_for(screen_id=screen_id)
    current_app.logger.info(f"Screen {screen_id} deleted: {removed}")
    return api_response(data={'id': screen_id, 'removed': removed})

# --- Form Definitions (versioned by division+screen) ---

@meta_bp.route('/form-definitions', methods=['POST'])
@login_required
@require_role(ROLE_SUPERADMIN, ROLE_ADMIN)
def publish_form_definition():
    data = get_json_body()
    division_id = parse_id(data.get('division_id'), 'division_id')
    screen_id = parse_id(data.get('screen_id'), 'screen_id')

    if not db.session.get(Division, division_id):
        raise NotFound("Division not found")
    if not db.session.get(Screen, screen_id):
        raise NotFound("Screen not found")

    ui_schema = data.get('ui_schema')
    if ui_schema is not None and not isinstance(ui_schema, dict):
        raise BadRequest("ui_schema must be a JSON object")

    definition = FormVersionService.publish(division_id, screen_id, data.get('schema'), ui_schema)
    return api_response(data=definition.to_dict(), status=201)

@meta_bp.route('/form-definitions/<division_id>/<screen_id>', methods=['GET'])
@login_required
def get_form_definition(division_id, screen_id):
    definition = FormVersionService.get_active(
        parse_id(division_id, 'division id'), parse_id(screen_id, 'screen id')
    )
    return api_response(data=definition.to_dict() if definition else None)

@meta_bp.route('/form-definitions/<division_id>/<screen_id>/versions', methods=['GET'])
@login_required
@require_role(ROLE_SUPERADMIN, ROLE_ADMIN)
def list_form_versions(division_id, screen_id):
    definitions = FormVersionService.list_versions(
        parse_id(division_id, 'division id'), parse_id(screen_id, 'screen id')
    )
    return api_response(data=[d.to_dict() for d in definitions])
