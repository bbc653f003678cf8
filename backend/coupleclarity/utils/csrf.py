"""
Request guard against cross-site form posts.

Browsers cannot send a JSON body or a custom header cross-origin without a CORS
preflight, so a state-changing API request must carry one of them.
"""
import logging

from flask import request, jsonify

logger = logging.getLogger(__name__)

SAFE_METHODS = ('GET', 'HEAD', 'OPTIONS')
REQUIRED_HEADER = 'X-Requested-With'
REQUIRED_HEADER_VALUE = 'CoupleClarity'
ALLOWED_CONTENT_TYPES = ('application/json', 'multipart/form-data')


def is_request_allowed() -> bool:
    if request.method in SAFE_METHODS:
        return True
    if request.headers.get(REQUIRED_HEADER) == REQUIRED_HEADER_VALUE:
        return True
    content_type = (request.content_type or '').lower()
    return any(content_type.startswith(allowed) for allowed in ALLOWED_CONTENT_TYPES)


def csrf_protect():
    """``before_request`` hook; returns a 403 response for unguarded API writes."""
    if not request.path.startswith('/api'):
        return None
    if is_request_allowed():
        return None
    logger.warning(f"Blocked {request.method} {request.path}: missing CSRF headers")
    return jsonify({"error": "Forbidden: missing required request headers"}), 403
