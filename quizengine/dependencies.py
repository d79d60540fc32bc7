from fastapi import Depends, Request

from quizengine.core.security import CallerIdentity, get_current_user
from quizengine.core.logging import get_logger, get_security_logger
from quizengine.utils.exceptions import AuthorizationError

logger = get_logger(__name__)
security_logger = get_security_logger(__name__)


async def get_current_caller(caller: CallerIdentity = Depends(get_current_user)) -> CallerIdentity:
    """Any authenticated caller; students and authors alike"""
    return caller


async def require_author(
        request: Request,
        caller: CallerIdentity = Depends(get_current_user)
) -> CallerIdentity:
    """
    Dependency for authoring routes: the caller's role must be one of the
    configured author roles.
    """
    if not caller.is_author:
        security_logger.log_authorization_failure(
            user_id=str(caller.user_id),
            resource=request.url.path,
            action=request.method,
            client_ip=request.client.host if request.client else None
        )
        raise AuthorizationError("Author role required")
    return caller
