from dataclasses import asdict

from fastapi import APIRouter, Depends

from auth import Principal
from routers.dependencies import auth_rate_limit, get_current_user

router = APIRouter(prefix="/api/auth", tags=["Auth"], dependencies=[Depends(auth_rate_limit)])


@router.get("/session")
async def current_session(user: Principal = Depends(get_current_user)):
    """Echo the principal behind the bearer token."""
    return {"authenticated": True, "user": asdict(user)}
