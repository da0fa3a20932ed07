from typing import Optional

from fastapi import Header, Query, Security
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

# HTTP Bearer token security scheme
security = HTTPBearer(auto_error=False)


async def get_stats_token(
    credentials: Optional[HTTPAuthorizationCredentials] = Security(security),
    x_admin_token: Optional[str] = Header(None, alias="X-Admin-Token"),
    token: Optional[str] = Query(None),
) -> Optional[str]:
    """
    Pull the admin token from the request, in order of preference:

        Authorization: Bearer <token>
        X-Admin-Token: <token>
        ?token=<token>
    """
    if credentials and credentials.credentials:
        return credentials.credentials.strip()
    if x_admin_token:
        return x_admin_token.strip()
    return token.strip() if token else None
