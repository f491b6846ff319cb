from __future__ import annotations

import logging
import re
import uuid
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel

from models import User
from utils.brevo_email import Mailer, get_mailer
from utils.errors import DeliveryError, UserExistsError
from utils.otp_service import OtpLedger, OtpResult, get_otp_ledger, send_otp_email
from utils.rate_limit import login_limiter, otp_limiter
from utils.security import check_password, create_user_token, hash_password
from utils.user_store import UserStore, get_user_store, normalize_email

logger = logging.getLogger(__name__)

router = APIRouter(tags=["auth"])

MIN_PASSWORD_LENGTH = 8

_EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
_OTP_RE = re.compile(r"^\d{6}$")


def _now() -> datetime:
    return datetime.utcnow()


def is_valid_email(email: str) -> bool:
    return bool(_EMAIL_RE.match(email or ""))


def _iso(value: Optional[datetime]) -> Optional[str]:
    return f"{value.isoformat()}Z" if value else None


def user_out(user: User) -> dict:
    """Public shape of a user record. The password hash never leaves the store."""
    return {
        "id": user.id,
        "email": user.email,
        "registered": _iso(user.registered_at),
        "lastLogin": _iso(user.last_login_at),
        "isActive": bool(user.is_active),
    }


class EmailIn(BaseModel):
    email: str = ""


class VerifyOtpIn(BaseModel):
    email: str = ""
    password: str = ""
    otp: str = ""


class LoginIn(BaseModel):
    email: str = ""
    password: str = ""
    # Accepted but does not change the token lifetime.
    rememberMe: bool = False


def _issue_and_deliver(email: str, *, store: UserStore, ledger: OtpLedger, mailer: Mailer, resend: bool) -> None:
    if not is_valid_email(email):
        raise HTTPException(400, "Invalid email format")

    # Advisory only; UserStore.add is what actually enforces uniqueness.
    if store.get_by_email(email):
        raise HTTPException(400, "User already exists")

    # The code is recorded before sending, so a failed send leaves it valid.
    code = ledger.issue(email)
    try:
        send_otp_email(mailer, to_email=email, code=code, resend=resend)
    except DeliveryError:
        logger.exception("Error sending OTP to %s", email)
        raise HTTPException(500, "Failed to send OTP")


@router.post("/send-otp", dependencies=[Depends(otp_limiter)])
def send_otp(
    payload: EmailIn,
    store: UserStore = Depends(get_user_store),
    ledger: OtpLedger = Depends(get_otp_ledger),
    mailer: Mailer = Depends(get_mailer),
):
    email = normalize_email(payload.email)
    _issue_and_deliver(email, store=store, ledger=ledger, mailer=mailer, resend=False)
    return {"message": "OTP sent successfully"}


@router.post("/resend-otp", dependencies=[Depends(otp_limiter)])
def resend_otp(
    payload: EmailIn,
    store: UserStore = Depends(get_user_store),
    ledger: OtpLedger = Depends(get_otp_ledger),
    mailer: Mailer = Depends(get_mailer),
):
    email = normalize_email(payload.email)
    _issue_and_deliver(email, store=store, ledger=ledger, mailer=mailer, resend=True)
    return {"message": "New OTP sent successfully"}


@router.post("/verify-otp", dependencies=[Depends(otp_limiter)])
def verify_otp(
    payload: VerifyOtpIn,
    store: UserStore = Depends(get_user_store),
    ledger: OtpLedger = Depends(get_otp_ledger),
):
    email = normalize_email(payload.email)
    otp = payload.otp.strip()

    if not is_valid_email(email) or len(payload.password) < MIN_PASSWORD_LENGTH or not _OTP_RE.match(otp):
        raise HTTPException(400, "Invalid input data")

    result = ledger.verify(email, otp)
    if result is OtpResult.INVALID:
        raise HTTPException(400, "Invalid OTP")
    if result is OtpResult.EXPIRED:
        raise HTTPException(400, "OTP has expired")

    user = User(
        id=uuid.uuid4().hex,
        email=email,
        password_hash=hash_password(payload.password),
        registered_at=_now(),
        last_login_at=None,
        is_active=True,
    )
    try:
        store.add(user)
    except UserExistsError:
        raise HTTPException(400, "User already exists")

    logger.info("Registered user %s (%s)", user.id, email)
    return {"message": "Registration successful"}


@router.post("/login", dependencies=[Depends(login_limiter)])
def login(payload: LoginIn, store: UserStore = Depends(get_user_store)):
    email = normalize_email(payload.email)
    if not is_valid_email(email) or not payload.password:
        raise HTTPException(400, "Invalid email or password")

    user = store.get_by_email(email)
    # Same answer for unknown email, wrong password and inactive account.
    if not user or not check_password(payload.password, user.password_hash) or not user.is_active:
        logger.info("Failed login for %s", email)
        raise HTTPException(401, "Invalid email or password")

    user = store.record_login(user.id, _now()) or user
    token = create_user_token(user_id=user.id, email=user.email)
    logger.info("User %s logged in", user.id)

    return {
        "message": "Login successful",
        "token": token,
        "user": {
            "email": user.email,
            "lastLogin": _iso(user.last_login_at),
        },
    }
