from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from pydantic import BaseModel

from routers.auth import user_out
from utils.errors import AuthError
from utils.rate_limit import login_limiter
from utils.security import AdminPrincipal, create_admin_token, decode_token, get_admin_principal, is_admin
from utils.user_store import UserStore, get_user_store

logger = logging.getLogger(__name__)

router = APIRouter(tags=["admin"])

bearer = HTTPBearer(auto_error=False)


def require_admin(creds: Optional[HTTPAuthorizationCredentials] = Depends(bearer)) -> dict:
    """
    Valid signature, unexpired, and carrying role=admin.
    A perfectly good user token is still rejected here.
    """
    if not creds or not creds.credentials:
        raise HTTPException(401, "No token provided")
    try:
        claims = decode_token(creds.credentials)
    except AuthError as e:
        raise HTTPException(401, str(e))
    if not is_admin(claims):
        raise HTTPException(401, "Admin privileges required")
    return claims


class AdminLoginIn(BaseModel):
    email: str = ""
    password: str = ""


@router.post("/admin-login", dependencies=[Depends(login_limiter)])
def admin_login(payload: AdminLoginIn, admin: AdminPrincipal = Depends(get_admin_principal)):
    if not admin.matches(payload.email, payload.password):
        logger.warning("Failed admin login for %s", payload.email)
        raise HTTPException(401, "Invalid admin credentials")

    logger.info("Admin logged in")
    return {
        "message": "Admin login successful",
        "token": create_admin_token(email=admin.email),
    }


@router.post("/verify-admin-token")
def verify_admin_token(claims: dict = Depends(require_admin)):
    return {"valid": True}


@router.get("/get-users")
def get_users(
    search: Optional[str] = None,
    store: UserStore = Depends(get_user_store),
    claims: dict = Depends(require_admin),
):
    users = store.all()
    term = (search or "").strip().lower()
    if term:
        users = [u for u in users if term in u.email.lower() or term in u.id.lower()]
    return {"users": [user_out(u) for u in users]}


@router.get("/get-user/{user_id}")
def get_user(
    user_id: str,
    store: UserStore = Depends(get_user_store),
    claims: dict = Depends(require_admin),
):
    user = store.get(user_id)
    if not user:
        raise HTTPException(404, "User not found")
    return {"user": user_out(user)}


@router.delete("/delete-user/{user_id}")
def delete_user(
    user_id: str,
    store: UserStore = Depends(get_user_store),
    claims: dict = Depends(require_admin),
):
    if not store.delete(user_id):
        raise HTTPException(404, "User not found")
    logger.info("Admin %s deleted user %s", claims.get("email"), user_id)
    return {"message": "User deleted successfully"}


@router.get("/admin-stats")
def admin_stats(
    store: UserStore = Depends(get_user_store),
    claims: dict = Depends(require_admin),
):
    """Dashboard counters: total users, logged in today (UTC), registered in the last 7 days."""
    now = datetime.utcnow()
    week_ago = now - timedelta(days=7)
    users = store.all()
    return {
        "totalUsers": len(users),
        "activeToday": sum(1 for u in users if u.last_login_at and u.last_login_at.date() == now.date()),
        "newThisWeek": sum(1 for u in users if u.registered_at and u.registered_at >= week_ago),
    }
