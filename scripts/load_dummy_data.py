import os
import sys
import uuid

import yaml

# Add repository root to path so we can import models/db
sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from database import create_session_factory, database_url
from models import User
from utils.errors import UserExistsError
from utils.security import hash_password
from utils.user_store import SqlUserStore


def load_data(path=None):
    url = database_url()
    if not url:
        print("DATABASE_URL is not set; in-memory users cannot be seeded.")
        return 0

    store = SqlUserStore(create_session_factory(url))

    with open(path or os.path.join(os.path.dirname(__file__), "dummy_users.yml"), "r") as f:
        data = yaml.safe_load(f) or {}

    added = 0
    for u_data in data.get("users", []):
        email = (u_data.get("email") or "").strip().lower()
        if store.get_by_email(email):
            print(f"User {email} already exists. Skipping.")
            continue

        user = User(
            id=uuid.uuid4().hex,
            email=email,
            password_hash=hash_password(u_data["password"]),
            is_active=bool(u_data.get("active", True)),
        )
        try:
            store.add(user)
        except UserExistsError:
            print(f"User {email} already exists. Skipping.")
            continue
        print(f"Adding user {email}...")
        added += 1

    print("Dummy data loaded.")
    return added


if __name__ == "__main__":
    load_data(sys.argv[1] if len(sys.argv) > 1 else None)
