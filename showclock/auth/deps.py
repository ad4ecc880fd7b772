from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from showclock.auth.jwt import decode_access_token

security = HTTPBearer()

async def require_operator(
    credentials: HTTPAuthorizationCredentials = Depends(security),
) -> dict:
    """Guard for operator-only routes; viewers never hold a token."""
    payload = decode_access_token(credentials.credentials)
    if payload is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token")
    if payload.get("role") != "operator" or payload.get("sub") is None:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Operator token required")
    return payload
