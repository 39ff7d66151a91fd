"""
Caller identity dependencies.

Authentication happens upstream; the gateway forwards the caller's user and
account ids as headers. These dependencies only require that they are present.
Header names come from settings so a gateway with its own naming can be fronted.
"""
import logging

from fastapi import Request

from talentgrid.core.config import settings
from talentgrid.core.exceptions import AuthenticationError
from talentgrid.core.identity import Actor

logger = logging.getLogger(__name__)


def get_actor(request: Request) -> Actor:
    """Build the acting identity from forwarded headers."""
    user_id = (request.headers.get(settings.user_header) or "").strip()
    account_id = (request.headers.get(settings.account_header) or "").strip()
    if not user_id or not account_id:
        logger.warning("Rejected request without identity headers")
        raise AuthenticationError(f"{settings.user_header} and {settings.account_header} headers are required")
    return Actor(user_id=user_id, account_id=account_id, name=request.headers.get(settings.user_name_header))
