# gymmini/authz.py
from __future__ import annotations

from typing import Callable

from fastapi import Depends, HTTPException, status

from gymmini.auth import get_current_user
from gymmini.schemas.projections import ROLES


def require_role(*allowed_roles: str) -> Callable:
    """
    Route dependency returning the caller's identity when its role is allowed:

        def list_users(user=Depends(require_role("admin"))): ...
    """
    allowed = {r.strip().lower() for r in allowed_roles if r}
    unknown = allowed - set(ROLES)
    if unknown:
        raise ValueError(f"unknown role(s): {', '.join(sorted(unknown))}")

    def _dep(user: dict = Depends(get_current_user)) -> dict:
        if user.get("role") not in allowed:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Insufficient role")
        return user

    return _dep
