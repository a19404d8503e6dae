import logging
from functools import wraps
from flask import abort, request
from flask_jwt_extended import verify_jwt_in_request
from permit_hub.services.policy import missing_permissions

logger = logging.getLogger(__name__)


def require_permissions(*codes: str):
    """Verify the bearer JWT and require every permission code in ``codes``.

    Codes are read from the token's ``perms`` claim, minted at login from the
    caller's roles, so a role change applies from the next login.
    """
    def outer(fn):
        @wraps(fn)
        def wrapper(*args, **kwargs):
            verify_jwt_in_request()
            missing = missing_permissions(*codes)
            if missing:
                logger.info('denied %s %s: missing %s', request.method, request.path, ','.join(missing))
                abort(403, description='Missing permission')
            return fn(*args, **kwargs)
        return wrapper
    return outer
