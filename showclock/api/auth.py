import secrets

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel

from showclock.auth.jwt import create_access_token
from showclock.config import get_settings

router = APIRouter(prefix="/api/auth", tags=["auth"])

class TokenRequest(BaseModel):
    operator_key: str
    name: str = "operator"

class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"

@router.post("/token", response_model=TokenResponse)
async def issue_token(req: TokenRequest):
    settings = get_settings()
    if not secrets.compare_digest(req.operator_key, settings.OPERATOR_KEY):
        raise HTTPException(status_code=401, detail="Invalid operator key")
    token = create_access_token({"sub": req.name, "role": "operator"})
    return TokenResponse(access_token=token)
