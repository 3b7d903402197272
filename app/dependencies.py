"""
Shared request dependencies for API routers.
"""
from fastapi import Header, HTTPException
from app.config import get_settings


def verify_api_key(x_api_key: str = Header(..., alias="X-API-Key")):
    """Verify API key for admin endpoints."""
    settings = get_settings()
    if not settings.admin_api_key or x_api_key != settings.admin_api_key:
        raise HTTPException(status_code=403, detail="Invalid API key")
    return x_api_key


def get_user_id(x_user_id: str = Header(..., alias="X-User-Id")) -> str:
    """Identity of the caller, established by the upstream gateway."""
    user_id = x_user_id.strip()
    if not user_id:
        raise HTTPException(status_code=401, detail="Missing user identity")
    return user_id
