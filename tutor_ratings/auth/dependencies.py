"""FastAPI dependencies for the caller's identity.

Authentication happens upstream; the gateway forwards the resolved user id
and role in ``X-User-Id`` / ``X-User-Role``. These dependencies only read
and check those values.
"""
from dataclasses import dataclass
from typing import Optional
from fastapi import Depends, Header, HTTPException, status

ROLES = ("parent", "tutor", "admin")


@dataclass(frozen=True)
class Identity:
    """Authenticated caller."""

    user_id: str
    role: str

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"


async def get_current_identity(
    x_user_id: Optional[str] = Header(None),
    x_user_role: Optional[str] = Header(None),
) -> Identity:
    """
    FastAPI dependency returning the identity resolved by the auth gateway.
    Raises HTTPException if the identity headers are missing or malformed.
    """
    if not x_user_id or not x_user_role:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
        )

    role = x_user_role.strip().lower()
    if role not in ROLES:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=f"Unknown role: {x_user_role}",
        )

    return Identity(user_id=x_user_id.strip(), role=role)


async def admin_required(identity: Identity = Depends(get_current_identity)) -> Identity:
    """FastAPI dependency that only lets admins through."""
    if not identity.is_admin:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin access required",
        )
    return identity
