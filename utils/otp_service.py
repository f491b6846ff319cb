from __future__ import annotations

import enum
import hmac
import logging
import os
import secrets
import threading
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from functools import lru_cache
from typing import Callable, Dict, Optional

import redis

from utils.brevo_email import Mailer
from utils.errors import AuthServiceError, DeliveryError

logger = logging.getLogger(__name__)

OTP_TTL_SECONDS = int(os.getenv("OTP_TTL_SECONDS", "120"))
# Redis keeps an expired entry this much longer so a late verify still reports EXPIRED.
OTP_RETAIN_SECONDS = int(os.getenv("OTP_RETAIN_SECONDS", "3600"))
OTP_SUBJECT = os.getenv("OTP_SUBJECT", "Your OTP Code")
OTP_RESEND_SUBJECT = os.getenv("OTP_RESEND_SUBJECT", "Your New OTP Code")


class OtpResult(enum.Enum):
    OK = "ok"
    INVALID = "invalid"
    EXPIRED = "expired"


@dataclass
class PendingOtp:
    code: str
    expires_at: float  # epoch seconds


class OtpStore(ABC):
    """Pending codes keyed by normalized email. At most one entry per email."""

    @abstractmethod
    def get(self, email: str) -> Optional[PendingOtp]:
        ...

    @abstractmethod
    def put(self, email: str, entry: PendingOtp) -> None:
        ...

    @abstractmethod
    def delete(self, email: str) -> None:
        ...


class MemoryOtpStore(OtpStore):
    # Entries for abandoned registrations stay until restart; there is no sweep.
    def __init__(self) -> None:
        self._mem: Dict[str, PendingOtp] = {}

    def get(self, email: str) -> Optional[PendingOtp]:
        return self._mem.get(email)

    def put(self, email: str, entry: PendingOtp) -> None:
        self._mem[email] = entry

    def delete(self, email: str) -> None:
        self._mem.pop(email, None)

    def __len__(self) -> int:
        return len(self._mem)


class RedisOtpStore(OtpStore):
    def __init__(self, client: "redis.Redis", *, retain_seconds: int = OTP_RETAIN_SECONDS) -> None:
        self._r = client
        self._retain_seconds = retain_seconds

    @staticmethod
    def _key(email: str) -> str:
        return f"otp:{email}"

    def get(self, email: str) -> Optional[PendingOtp]:
        raw = self._r.get(self._key(email))
        if not raw:
            return None
        code, _, exp = raw.partition(":")
        try:
            return PendingOtp(code=code, expires_at=float(exp))
        except ValueError:
            logger.warning("Discarding malformed OTP entry for %s", email)
            return None

    def put(self, email: str, entry: PendingOtp) -> None:
        ttl = max(1, int(entry.expires_at - time.time()) + self._retain_seconds)
        self._r.set(self._key(email), f"{entry.code}:{entry.expires_at}", ex=ttl)

    def delete(self, email: str) -> None:
        self._r.delete(self._key(email))


def generate_code() -> str:
    return str(100000 + secrets.randbelow(900000))


class OtpLedger:
    """Issues and checks single-use registration codes."""

    def __init__(
        self,
        store: OtpStore,
        *,
        ttl_seconds: int = OTP_TTL_SECONDS,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.store = store
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._lock = threading.Lock()

    def issue(self, email: str) -> str:
        """Store a fresh code for `email`, replacing any pending one, and return it."""
        code = generate_code()
        with self._lock:
            self.store.put(email, PendingOtp(code=code, expires_at=self._clock() + self.ttl_seconds))
        logger.info("OTP issued for %s", email)
        return code

    def verify(self, email: str, submitted: str) -> OtpResult:
        """
        A wrong code leaves the entry in place so the user can retry.
        An expired entry is removed when detected; a correct code consumes it.
        """
        submitted = (submitted or "").strip()
        with self._lock:
            entry = self.store.get(email)
            if entry is None or not hmac.compare_digest(entry.code.encode(), submitted.encode()):
                return OtpResult.INVALID
            if self._clock() > entry.expires_at:
                self.store.delete(email)
                return OtpResult.EXPIRED
            self.store.delete(email)
        return OtpResult.OK


def send_otp_email(mailer: Mailer, *, to_email: str, code: str, resend: bool = False) -> None:
    minutes = max(1, OTP_TTL_SECONDS // 60)
    label = "new OTP code" if resend else "OTP code"
    html = f"""
    <div style="font-family:Arial,sans-serif">
      <p>Your {label} is:</p>
      <div style="font-size:28px;font-weight:700;letter-spacing:2px">{code}</div>
      <p>This code will expire in {minutes} minutes.</p>
    </div>
    """
    try:
        mailer(
            to_email=to_email,
            subject=OTP_RESEND_SUBJECT if resend else OTP_SUBJECT,
            html=html,
            text=f"Your {label} is: {code}",
        )
    except AuthServiceError:
        raise
    except Exception as e:
        raise DeliveryError(str(e)) from e


@lru_cache(maxsize=None)
def get_otp_ledger() -> OtpLedger:
    url = os.getenv("REDIS_URL")
    if url:
        logger.info("Using Redis OTP store")
        return OtpLedger(RedisOtpStore(redis.Redis.from_url(url, decode_responses=True)))
    logger.info("Using in-memory OTP store")
    return OtpLedger(MemoryOtpStore())
