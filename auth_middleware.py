from functools import wraps
from flask import request, jsonify, g
from firebase_admin import auth
import logging

logger = logging.getLogger(__name__)

# Custom claim set on operator accounts that may rebuild the place index
ADMIN_CLAIM = 'admin'


def _bearer_token():
    scheme, _, token = (request.headers.get('Authorization') or '').partition(' ')
    if not scheme:
        return None
    if scheme != 'Bearer' or not token or ' ' in token:
        logger.warning(f"Ignoring malformed Authorization header on {request.path}")
        return None
    return token


def get_authenticated_user():
    """Claims of the Firebase ID token sent with a search request, or None for anonymous callers."""
    token = _bearer_token()
    if token is None:
        return None

    try:
        return auth.verify_id_token(token)
    except auth.ExpiredIdTokenError:
        logger.warning(f"Expired ID token on {request.path}")
    except auth.InvalidIdTokenError:
        logger.warning(f"Invalid ID token on {request.path}")
    except (ValueError, auth.CertificateFetchError) as e:
        logger.error(f"Could not verify ID token on {request.path}: {str(e)}")
    return None


def optional_auth(f):
    """Search routes are open to anonymous clients; a signed-in caller's claims land in g.user."""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        g.user = get_authenticated_user()
        return f(*args, **kwargs)

    return decorated_function


def require_admin(f):
    """Guards index maintenance routes such as /admin/reindex."""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        claims = get_authenticated_user()
        if claims is None:
            return jsonify({"error": "Authentication required"}), 401
        if not claims.get(ADMIN_CLAIM, False):
            logger.warning(f"Non-admin {claims.get('uid')} tried {request.path}")
            return jsonify({"error": "Admin access required"}), 403

        g.user = claims
        return f(*args, **kwargs)

    return decorated_function
