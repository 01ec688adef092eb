from functools import wraps
from flask_login import current_user
from division_forms.errors import AccessDenied
from division_forms.services.access_service import AccessService
from division_forms.utils import parse_id

def require_role(*roles):
    """Only lets through authenticated users whose role is in roles."""
    def decorator(f):
        @wraps(f)
        def decorated(*args, **kwargs):
            if not current_user.is_authenticated or current_user.role not in roles:
                raise AccessDenied()
            return f(*args, **kwargs)
        return decorated
    return decorator

def require_division_screen_access(f):
    """
    Gate for /<division_id>/<screen_id>/ routes. Runs before any form
    logic so an unauthorized caller never reaches the core.
    """
    @wraps(f)
    def decorated(division_id, screen_id, *args, **kwargs):
        division_id = parse_id(division_id, 'division id')
        screen_id = parse_id(screen_id, 'screen id')
        AccessService.check_access(current_user.id, division_id, screen_id)
        return f(division_id, screen_id, *args, **kwargs)
    return decorated
