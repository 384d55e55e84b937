# backend/app/api/dependencies/auth.py
"""
Client identity dependencies.

Authentication happens upstream: the auth gateway verifies the session and
forwards the client's id in the ``X-Client-ID`` header. Deployments with a
different identity source override ``get_current_client_id``.
"""

import logging
import re
from typing import Optional

from fastapi import Header, HTTPException, status

from ...core.constants import ULID_PATH_PATTERN

logger = logging.getLogger(__name__)

_CLIENT_ID_RE = re.compile(ULID_PATH_PATTERN)


def get_current_client_id(
    x_client_id: Optional[str] = Header(default=None, alias="X-Client-ID"),
) -> str:
    """Return the authenticated client's id or reject the request."""
    client_id = (x_client_id or "").strip()
    if not client_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={"message": "Not authenticated", "code": "NOT_AUTHENTICATED"},
        )
    if not _CLIENT_ID_RE.match(client_id):
        logger.warning("Rejected malformed client id header")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={"message": "Invalid client identity", "code": "INVALID_CLIENT_ID"},
        )
    return client_id
