from __future__ import annotations

import logging
from typing import Annotated

from fastapi import Depends, Header, HTTPException, status

from coursetrack.models.principal import Principal
from coursetrack.services.errors import (
    InvalidHierarchyError,
    NotEnrolledError,
    NotFoundError,
    PersistenceConflictError,
    ProgressError,
)

logger = logging.getLogger(__name__)

_ERROR_STATUS: dict[type[ProgressError], int] = {
    NotFoundError: status.HTTP_404_NOT_FOUND,
    NotEnrolledError: status.HTTP_404_NOT_FOUND,
    PersistenceConflictError: status.HTTP_409_CONFLICT,
    InvalidHierarchyError: status.HTTP_422_UNPROCESSABLE_ENTITY,
}


def require_user(
    x_user_id: Annotated[str | None, Header()] = None,
    x_user_roles: Annotated[str | None, Header()] = None,
) -> Principal:
    """Build the caller's Principal from the gateway's identity headers.

    X-User-Id is required; X-User-Roles is an optional comma-separated
    list.  Used as a FastAPI dependency on every /v1 and /admin endpoint.
    """
    user_id = (x_user_id or "").strip()
    if not user_id:
        logger.warning("Request without X-User-Id rejected")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing user identity",
        )

    roles = frozenset(
        r.strip() for r in (x_user_roles or "").split(",") if r.strip()
    )
    return Principal(user_id=user_id, roles=roles)


def require_role(role: str):
    """Dependency factory: demand a specific role.

    Usage: Depends(require_role("admin"))
    Returns the Principal if the role is present, else 403.
    """

    def _guard(
        principal: Annotated[Principal, Depends(require_user)],
    ) -> Principal:
        if not principal.has_role(role):
            logger.warning(
                "Access denied: user=%s missing role=%s",
                principal.user_id,
                role,
            )
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Insufficient permissions",
            )
        return principal

    return _guard


def http_error(exc: ProgressError) -> HTTPException:
    """Translate a core error into the HTTP error the API returns for it."""
    status_code = _ERROR_STATUS.get(type(exc), status.HTTP_400_BAD_REQUEST)
    return HTTPException(
        status_code=status_code,
        detail={"code": exc.code, "message": exc.message},
    )
