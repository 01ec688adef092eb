from datetime import datetime, timezone
from flask import jsonify, request
from division_forms.errors import BadRequest

def api_response(success=True, data=None, error=None, status=200):
    """Standardized JSON response for all API routes."""
    response = {
        'success': success,
        'data': data,
        'error': error
    }
    return jsonify(response), status

def get_json_body():
    """Request body as a dict; anything else is a 400."""
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise BadRequest("Request body must be a JSON object")
    return data

def parse_id(value, name='id'):
    try:
        parsed = int(value)
    except (TypeError, ValueError):
        raise BadRequest(f"Invalid {name}")
    if parsed <= 0:
        raise BadRequest(f"Invalid {name}")
    return parsed

def parse_id_list(values, name='ids'):
    if not isinstance(values, list):
        raise BadRequest(f"{name}[] is required")
    return [parse_id(v, name) for v in values]

def clamp_int(value, minimum, maximum, fallback):
    try:
        x = int(value)
    except (TypeError, ValueError):
        return fallback
    return min(maximum, max(minimum, x))

def paginate_params(args, default_limit=20, max_limit=100):
    page = clamp_int(args.get('page'), 1, 10 ** 6, 1)
    limit = clamp_int(args.get('limit'), 1, max_limit, default_limit)
    return page, limit

def page_envelope(items, page, limit, total):
    return {
        'items': items,
        'page': page,
        'limit': limit,
        'total': total,
        'pages': (total + limit - 1) // limit
    }

def parse_datetime(value, name):
    """ISO-8601 date or datetime to naive UTC. Empty -> None."""
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.replace('Z', '+00:00'))
    except ValueError:
        raise BadRequest(f"Invalid {name} date")
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed
