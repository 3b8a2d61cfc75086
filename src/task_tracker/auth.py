"""
Identity resolution for task routes.

The ``x-user-id`` header is a capability token asserted by the caller. It is
not verified in any way: whoever presents a token acts as that user. The
resolver only makes sure an identity record exists for it.
"""

import logging
from typing import Optional

from fastapi import Depends, Header, Request

from .database import TaskDatabase
from .dependencies import get_database
from .errors import UnauthorizedError

logger = logging.getLogger(__name__)

USER_ID_HEADER = "x-user-id"


def get_current_user(
    request: Request,
    x_user_id: Optional[str] = Header(None, alias=USER_ID_HEADER),
    db: TaskDatabase = Depends(get_database),
) -> str:
    """
    Resolve the calling identity from the request headers.

    Provisions an identity record on first sight of a token and binds the
    token to ``request.state.user_id``.

    Returns:
        The identity token

    Raises:
        UnauthorizedError: If the header is missing or blank
    """
    user_id = (x_user_id or "").strip()
    if not user_id:
        raise UnauthorizedError(f"{USER_ID_HEADER} header is required")

    if db.ensure_user(user_id):
        logger.info(f"Provisioned new user {user_id}")

    request.state.user_id = user_id
    return user_id
