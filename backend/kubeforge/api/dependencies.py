"""Request dependencies shared by the API routers."""
from typing import Optional

from fastapi import Header, HTTPException


async def get_auth_token(
    x_auth_token: Optional[str] = Header(None),
    authorization: Optional[str] = Header(None),
) -> str:
    """Extract the tenant's cloud token from ``X-Auth-Token`` or a Bearer header.

    The token is only checked for presence here; each operation verifies it
    against the owning project through the identity service.
    """
    if x_auth_token:
        return x_auth_token
    if authorization and authorization.startswith("Bearer "):
        token = authorization.replace("Bearer ", "", 1).strip()
        if token:
            return token
    raise HTTPException(status_code=401, detail="Authentication token is missing")
