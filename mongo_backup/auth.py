"""
Shared-secret authentication for the backup trigger endpoints.
"""

import hmac
from functools import wraps

from flask import current_app, jsonify, request


TOKEN_HEADER = 'X-Backup-Token'


def verify_token(expected: str, provided: str) -> bool:
    """
    Compare a provided token against the configured one in constant time.

    Args:
        expected: Configured shared secret
        provided: Token sent by the caller

    Returns:
        True if both are non-empty and equal
    """
    if not expected or not provided:
        return False
    return hmac.compare_digest(expected.encode('utf-8'), provided.encode('utf-8'))


def token_required(view):
    """
    Reject requests without a valid X-Backup-Token header.

    Responds 503 when no token is configured on the server, so the endpoints
    are never open by accident.
    """
    @wraps(view)
    def wrapped(*args, **kwargs):
        expected = current_app.config.get('BACKUP_API_TOKEN')
        if not expected:
            current_app.logger.warning("Backup API token not configured, rejecting request")
            return jsonify({'error': 'Backup API is not configured'}), 503

        if not verify_token(expected, request.headers.get(TOKEN_HEADER, '')):
            current_app.logger.warning(f"Unauthorized backup API request from {request.remote_addr}")
            return jsonify({'error': 'Unauthorized'}), 401

        return view(*args, **kwargs)

    return wrapped
