from __future__ import annotations

from datetime import datetime

from sqlalchemy import Boolean, Column, DateTime, String

from database import Base


class User(Base):
    __tablename__ = "users"

    # Opaque string id (uuid4 hex), never reused.
    id = Column(String, primary_key=True)

    # Always stored lowercase; the unique index is what rejects a second
    # registration racing past the "user exists" pre-check.
    email = Column(String, unique=True, index=True, nullable=False)

    # Store password hash (bcrypt). Never store plaintext.
    password_hash = Column(String, nullable=False)

    registered_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    last_login_at = Column(DateTime, nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)
