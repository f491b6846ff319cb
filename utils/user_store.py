"""
Credential store: registered user records.

The in-memory store is the default. Setting DATABASE_URL switches to the
SQLAlchemy-backed store; both reject a duplicate email at insert time.
"""
from __future__ import annotations

import logging
import threading
from abc import ABC, abstractmethod
from datetime import datetime
from functools import lru_cache
from typing import Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import sessionmaker

from database import create_session_factory, database_url
from models import User
from utils.errors import UserExistsError

logger = logging.getLogger(__name__)


def normalize_email(email: Optional[str]) -> str:
    return (email or "").strip().lower()


class UserStore(ABC):
    @abstractmethod
    def add(self, user: User) -> User:
        """Insert a new record; raises UserExistsError if the email is taken."""

    @abstractmethod
    def get(self, user_id: str) -> Optional[User]:
        ...

    @abstractmethod
    def get_by_email(self, email: str) -> Optional[User]:
        ...

    @abstractmethod
    def all(self) -> List[User]:
        ...

    @abstractmethod
    def record_login(self, user_id: str, when: datetime) -> Optional[User]:
        ...

    @abstractmethod
    def delete(self, user_id: str) -> bool:
        """Remove a record permanently. Returns False for an unknown id."""


class MemoryUserStore(UserStore):
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._by_id: Dict[str, User] = {}
        self._id_by_email: Dict[str, str] = {}

    def add(self, user: User) -> User:
        email = normalize_email(user.email)
        with self._lock:
            if email in self._id_by_email:
                raise UserExistsError(email)
            user.email = email
            self._by_id[user.id] = user
            self._id_by_email[email] = user.id
        return user

    def get(self, user_id: str) -> Optional[User]:
        with self._lock:
            return self._by_id.get(user_id)

    def get_by_email(self, email: str) -> Optional[User]:
        with self._lock:
            user_id = self._id_by_email.get(normalize_email(email))
            return self._by_id.get(user_id) if user_id else None

    def all(self) -> List[User]:
        with self._lock:
            return list(self._by_id.values())

    def record_login(self, user_id: str, when: datetime) -> Optional[User]:
        with self._lock:
            user = self._by_id.get(user_id)
            if user is not None:
                user.last_login_at = when
            return user

    def delete(self, user_id: str) -> bool:
        with self._lock:
            user = self._by_id.pop(user_id, None)
            if user is None:
                return False
            self._id_by_email.pop(user.email, None)
            return True


class SqlUserStore(UserStore):
    def __init__(self, session_factory: sessionmaker) -> None:
        self._session_factory = session_factory

    def add(self, user: User) -> User:
        user.email = normalize_email(user.email)
        with self._session_factory() as db:
            db.add(user)
            try:
                db.commit()
            except IntegrityError:
                db.rollback()
                raise UserExistsError(user.email)
            db.refresh(user)
        return user

    def get(self, user_id: str) -> Optional[User]:
        with self._session_factory() as db:
            return db.get(User, user_id)

    def get_by_email(self, email: str) -> Optional[User]:
        with self._session_factory() as db:
            return db.execute(
                select(User).where(User.email == normalize_email(email))
            ).scalar_one_or_none()

    def all(self) -> List[User]:
        with self._session_factory() as db:
            return list(db.execute(select(User).order_by(User.registered_at)).scalars())

    def record_login(self, user_id: str, when: datetime) -> Optional[User]:
        with self._session_factory() as db:
            user = db.get(User, user_id)
            if user is None:
                return None
            user.last_login_at = when
            db.commit()
            return user

    def delete(self, user_id: str) -> bool:
        with self._session_factory() as db:
            user = db.get(User, user_id)
            if user is None:
                return False
            db.delete(user)
            db.commit()
            return True


@lru_cache(maxsize=None)
def get_user_store() -> UserStore:
    url = database_url()
    if url:
        logger.info("Using SQL user store")
        return SqlUserStore(create_session_factory(url))
    logger.info("Using in-memory user store")
    return MemoryUserStore()
