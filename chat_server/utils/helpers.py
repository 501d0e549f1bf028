from flask import jsonify


def respond_error(message_or_dict, status=400, **extra):
    """Return a standardized error response."""
    if isinstance(message_or_dict, dict):
        body = {'success': False, 'errors': message_or_dict}
    else:
        body = {'success': False, 'error': message_or_dict}
    body.update(extra)
    return jsonify(body), status


def respond_success(payload=None, status=200):
    if payload is None:
        payload = {}
    body = {'success': True}
    if isinstance(payload, dict):
        body.update(payload)
    else:
        body['data'] = payload
    return jsonify(body), status


def parse_bool(value, default=False) -> bool:
    if value is None:
        return default
    return str(value).strip().lower() in ('1', 'true', 'yes')
