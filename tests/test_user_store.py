"""Unit tests for auth/store.py -- UserStore persistence and admin bootstrap.

Covers:
- First created user becomes admin regardless of the requested role
- Later users keep the requested role
- A failed insert does not consume the admin claim
- Opening a store on a database that already has users never mints an admin
- Username/email are stored lower-cased and looked up case-insensitively
- list_users() search, ordering, paging and LIKE-wildcard escaping
- update_user() rejects unknown columns; delete_user() reports misses
"""

import pytest
from sqlalchemy.exc import IntegrityError

from auth.models import ROLE_ADMIN, ROLE_USER, User
from auth.store import UserStore


def _user(name: str, **kwargs) -> User:
    return User(username=name, email=f"{name}@example.com", hashed_password="x", **kwargs)


# ---------------------------------------------------------------------------
# Admin bootstrap
# ---------------------------------------------------------------------------


class TestAdminBootstrap:
    def test_first_user_is_admin(self, user_store):
        assert not user_store.admin_claimed()
        uid = user_store.create_user(_user("first"))
        assert user_store.get_by_id(uid).role == ROLE_ADMIN
        assert user_store.admin_claimed()

    def test_second_user_is_regular(self, user_store):
        user_store.create_user(_user("first"))
        uid = user_store.create_user(_user("second"))
        assert user_store.get_by_id(uid).role == ROLE_USER

    def test_later_user_keeps_explicit_admin_role(self, user_store):
        user_store.create_user(_user("first"))
        uid = user_store.create_user(_user("deputy", role=ROLE_ADMIN))
        assert user_store.get_by_id(uid).role == ROLE_ADMIN
        assert user_store.count_active_admins() == 2

    def test_failed_insert_does_not_consume_claim(self, user_store):
        """A NOT NULL violation rolls back the claim with the insert."""
        with pytest.raises(IntegrityError):
            user_store.create_user(User(username="broken", email="broken@example.com", hashed_password=None))
        assert not user_store.admin_claimed()
        uid = user_store.create_user(_user("real"))
        assert user_store.get_by_id(uid).role == ROLE_ADMIN

    def test_reopened_database_with_users_stays_claimed(self, user_store):
        """A second store on the same DB sees the claim already taken."""
        user_store.create_user(_user("first"))
        url = str(user_store.engine.url)
        again = UserStore(url)
        try:
            uid = again.create_user(_user("second"))
            assert again.get_by_id(uid).role == ROLE_USER
        finally:
            again.close()

    def test_emptied_store_hands_admin_to_next_user(self, user_store):
        first = user_store.create_user(_user("first"))
        second = user_store.create_user(_user("second"))
        user_store.delete_user(first)
        user_store.delete_user(second)
        assert user_store.count_users() == 0
        uid = user_store.create_user(_user("third"))
        assert user_store.get_by_id(uid).role == ROLE_ADMIN


# ---------------------------------------------------------------------------
# Identity normalization
# ---------------------------------------------------------------------------


class TestIdentity:
    def test_stored_lowercase(self, user_store):
        uid = user_store.create_user(User(username=" Ada ", email="Ada@Example.COM", hashed_password="x"))
        user = user_store.get_by_id(uid)
        assert user.username == "ada"
        assert user.email == "ada@example.com"

    def test_lookup_case_insensitive(self, user_store):
        user_store.create_user(_user("ada"))
        assert user_store.get_by_email("ADA@example.com") is not None
        assert user_store.find_by_email_or_username("other@example.com", "ADA") is not None

    def test_unique_ignores_case(self, user_store):
        user_store.create_user(_user("ada"))
        with pytest.raises(IntegrityError):
            user_store.create_user(User(username="ADA", email="new@example.com", hashed_password="x"))

    def test_find_by_email_or_username_miss(self, user_store):
        user_store.create_user(_user("ada"))
        assert user_store.find_by_email_or_username("bob@example.com", "bob") is None


# ---------------------------------------------------------------------------
# Listing and lookups
# ---------------------------------------------------------------------------


class TestListUsers:
    @pytest.fixture
    def seeded(self, user_store):
        user_store.create_user(_user("charlie", first_name="Charles", last_name="Xavier"))
        user_store.create_user(_user("alice", first_name="Alice", last_name="Liddell"))
        user_store.create_user(_user("bob", first_name="Robert", last_name="Paulson"))
        return user_store

    def test_ordered_by_username(self, seeded):
        users, total = seeded.list_users()
        assert [u.username for u in users] == ["alice", "bob", "charlie"]
        assert total == 3

    def test_search_matches_names_case_insensitively(self, seeded):
        users, total = seeded.list_users(search="ROBERT")
        assert [u.username for u in users] == ["bob"]
        assert total == 1

    def test_search_escapes_wildcards(self, seeded):
        users, total = seeded.list_users(search="%")
        assert users == []
        assert total == 0

    def test_paging(self, seeded):
        users, total = seeded.list_users(offset=1, limit=1)
        assert [u.username for u in users] == ["bob"]
        assert total == 3

    def test_get_many(self, seeded):
        alice = seeded.get_by_email("alice@example.com")
        found = seeded.get_many({alice.id, 999})
        assert set(found) == {alice.id}
        assert seeded.get_many(set()) == {}


class TestWrites:
    def test_update_rejects_unknown_columns(self, user_store):
        uid = user_store.create_user(_user("ada"))
        with pytest.raises(ValueError):
            user_store.update_user(uid, is_superuser=True)

    def test_update_stamps_updated_at(self, user_store):
        uid = user_store.create_user(_user("ada"))
        before = user_store.get_by_id(uid)
        assert user_store.update_user(uid, first_name="Ada")
        after = user_store.get_by_id(uid)
        assert after.first_name == "Ada"
        assert after.updated_at >= before.updated_at

    def test_update_missing_user(self, user_store):
        assert user_store.update_user(999, first_name="x") is False

    def test_update_last_login(self, user_store):
        uid = user_store.create_user(_user("ada"))
        assert user_store.get_by_id(uid).last_login is None
        user_store.update_last_login(uid)
        assert user_store.get_by_id(uid).last_login is not None

    def test_delete(self, user_store):
        uid = user_store.create_user(_user("ada"))
        assert user_store.delete_user(uid) is True
        assert user_store.get_by_id(uid) is None
        assert user_store.delete_user(uid) is False

    def test_deleted_id_not_reused(self, user_store):
        user_store.create_user(_user("admin"))
        uid = user_store.create_user(_user("ada"))
        user_store.delete_user(uid)
        assert user_store.create_user(_user("bea")) > uid

    def test_ping(self, user_store):
        assert user_store.ping() is True
