from datetime import datetime

import pytest

from database import create_session_factory
from models import User
from utils.errors import UserExistsError
from utils.user_store import MemoryUserStore, SqlUserStore


def make_user(user_id="u1", email="a@b.com"):
    return User(
        id=user_id,
        email=email,
        password_hash="x",
        registered_at=datetime(2024, 1, 1),
        last_login_at=None,
        is_active=True,
    )


@pytest.fixture(params=["memory", "sql"])
def store(request):
    if request.param == "memory":
        return MemoryUserStore()
    return SqlUserStore(create_session_factory("sqlite://"))


def test_add_and_lookup(store):
    store.add(make_user())

    assert store.get("u1").email == "a@b.com"
    assert store.get_by_email("A@B.com ").id == "u1"
    assert store.get("missing") is None
    assert store.get_by_email("c@d.com") is None


def test_email_is_lowercased_on_insert(store):
    store.add(make_user(email=" Mixed@Case.COM"))
    assert store.get("u1").email == "mixed@case.com"


def test_duplicate_email_rejected_at_insert(store):
    store.add(make_user("u1", "a@b.com"))

    with pytest.raises(UserExistsError):
        store.add(make_user("u2", "A@b.com"))

    assert [u.id for u in store.all()] == ["u1"]


def test_record_login(store):
    store.add(make_user())
    when = datetime(2024, 5, 1, 12, 0)

    updated = store.record_login("u1", when)

    assert updated.last_login_at == when
    assert store.get("u1").last_login_at == when
    assert store.record_login("missing", when) is None


def test_delete_twice(store):
    store.add(make_user())

    assert store.delete("u1") is True
    assert store.get("u1") is None
    assert store.delete("u1") is False


def test_email_free_again_after_delete(store):
    store.add(make_user("u1"))
    store.delete("u1")
    store.add(make_user("u2"))
    assert store.get_by_email("a@b.com").id == "u2"


def test_all_in_registration_order(store):
    first = make_user("u1", "a@b.com")
    second = make_user("u2", "c@d.com")
    second.registered_at = datetime(2024, 2, 1)
    store.add(first)
    store.add(second)

    assert [u.id for u in store.all()] == ["u1", "u2"]
