from flask import Blueprint, request, current_app
from flask_login import login_required, current_user
from division_forms.acl import require_division_screen_access
from division_forms.services.form_version_service import FormVersionService
from division_forms.services.submission_service import SubmissionService
from division_forms.utils import api_response, paginate_params, page_envelope, parse_datetime

forms_bp = Blueprint('forms', __name__, url_prefix='/forms')

def get_submission_validator():
    return current_app.extensions['submission_validator']

# ==========================================
# FORM SCHEMA & SUBMISSION (ACL ENFORCED)
# ==========================================

@forms_bp.route('/<division_id>/<screen_id>/schema', methods=['GET'])
@login_required
@require_division_screen_access
def get_schema(division_id, screen_id):
    """Active form definition for the pair, or null."""
    definition = FormVersionService.get_active(division_id, screen_id)
    return api_response(data=definition.to_dict() if definition else None)

@forms_bp.route('/<division_id>/<screen_id>/submit', methods=['POST'])
@login_required
@require_division_screen_access
def submit(division_id, screen_id):
    """
    Validates the JSON body against the active schema and stores it.
    422 carries every violation at once.
    """
    payload = request.get_json(silent=True)
    if payload is None:
        payload = {}

    submission = SubmissionService.submit(
        get_submission_validator(), current_user, division_id, screen_id, payload
    )
    current_app.logger.info(
        f"Submission {submission.id} stored for {division_id}:{screen_id} v{submission.form_version}"
    )
    return api_response(data=submission.to_dict(), status=201)

@forms_bp.route('/<division_id>/<screen_id>/submissions', methods=['GET'])
@login_required
@require_division_screen_access
def list_submissions(division_id, screen_id):
    page, limit = paginate_params(request.args)
    since = parse_datetime(request.args.get('since'), 'since')
    until = parse_datetime(request.args.get('until'), 'until')
    sort = 'asc' if request.args.get('sort', 'desc').lower() == 'asc' else 'desc'

    items, total = SubmissionService.list_submissions(
        division_id, screen_id, page=page, limit=limit, since=since, until=until, sort=sort
    )
    return api_response(data=page_envelope([s.to_dict() for s in items], page, limit, total))
