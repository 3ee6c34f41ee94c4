"""Role-based access dependencies.

Usage in endpoints::

    @router.put("/{sale_id}/cancel")
    def cancel(
        sale_id: UUID,
        db: Session = Depends(get_db),
        current_user: User = Depends(require_privileged),
    ):
        ...
"""

from __future__ import annotations

from fastapi import Depends, HTTPException, status

from autoparts.app.api.deps import get_current_user
from autoparts.app.models.user import PRIVILEGED_ROLES, RoleEnum, User


def require_roles(*roles: RoleEnum):
    """FastAPI dependency factory; the user must hold one of *roles*.

    Returns the authenticated ``User`` so the endpoint can use it.
    """

    def _checker(current_user: User = Depends(get_current_user)) -> User:
        if current_user.role not in roles:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Requires role: {', '.join(sorted(r.value for r in roles))}",
            )
        return current_user

    return _checker


require_privileged = require_roles(*PRIVILEGED_ROLES)
