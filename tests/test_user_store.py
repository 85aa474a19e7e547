"""Unit tests for auth/store.py -- the user registry.

Covers:
- create() hashes the password, defaults role, returns a sanitized view
- email uniqueness on create and update (exact, case-sensitive match)
- same-email resubmission on update is not a conflict
- update() rehashes passwords and refreshes updated_at
- find/remove on unknown ids raise NotFound and leave the registry unchanged
- list_users() preserves insertion order and never exposes hashes
- removed ids are not reused
- concurrent updates of one record do not lose writes
"""

import threading
from dataclasses import fields

import pytest

from auth.errors import Conflict, InvalidInput, NotFound, StorageUnavailable
from auth.models import PublicUser, Role, User
from auth.store import UserStore


@pytest.fixture
def admin(store):
    return store.create("Admin User", "admin@example.com", "password", Role.admin)


# ---------------------------------------------------------------------------
# create
# ---------------------------------------------------------------------------


def test_create_returns_sanitized_user(store, admin):
    assert isinstance(admin, PublicUser)
    assert admin.id is not None
    assert admin.name == "Admin User"
    assert admin.email == "admin@example.com"
    assert admin.role is Role.admin
    assert admin.created_at and admin.updated_at
    assert "password_hash" not in admin.to_dict()
    assert "password" not in admin.to_dict()


def test_create_defaults_role_to_user(store):
    user = store.create("Regular User", "user@example.com", "password")
    assert user.role is Role.user


def test_create_hashes_password(store, hasher, admin):
    stored = store.find_by_email("admin@example.com")
    assert isinstance(stored, User)
    assert stored.password_hash != "password"
    assert hasher.verify("password", stored.password_hash)


def test_create_duplicate_email_conflicts_and_leaves_registry_unchanged(store, admin):
    with pytest.raises(Conflict):
        store.create("Someone Else", "admin@example.com", "other")
    assert len(store.list_users()) == 1


def test_email_uniqueness_is_case_sensitive(store, admin):
    other = store.create("Shouty", "ADMIN@example.com", "password")
    assert other.id != admin.id
    assert store.count() == 2


@pytest.mark.parametrize(
    "name,email,password,role",
    [
        ("", "a@example.com", "password", None),
        ("Name", "   ", "password", None),
        ("Name", "a@example.com", "", None),
        ("Name", "a@example.com", "password", "superuser"),
    ],
)
def test_create_rejects_invalid_input(store, name, email, password, role):
    with pytest.raises(InvalidInput):
        store.create(name, email, password, role)
    assert store.count() == 0


# ---------------------------------------------------------------------------
# find
# ---------------------------------------------------------------------------


def test_find_by_id(store, admin):
    found = store.find_by_id(admin.id)
    assert found == admin
    assert not hasattr(found, "password_hash")


def test_find_by_id_unknown(store):
    with pytest.raises(NotFound):
        store.find_by_id(999)


def test_find_by_email_unknown(store, admin):
    with pytest.raises(NotFound):
        store.find_by_email("nosuch@example.com")


# ---------------------------------------------------------------------------
# update
# ---------------------------------------------------------------------------


def test_update_same_email_is_not_a_conflict(store, admin):
    updated = store.update(admin.id, email="admin@example.com")
    assert updated.email == "admin@example.com"


def test_update_to_taken_email_conflicts(store, admin):
    other = store.create("Regular User", "user@example.com", "password")
    with pytest.raises(Conflict):
        store.update(other.id, email="admin@example.com")
    assert store.find_by_id(other.id).email == "user@example.com"


def test_update_fields_and_refreshes_updated_at(store, admin):
    updated = store.update(admin.id, name="Renamed", role="user")
    assert updated.name == "Renamed"
    assert updated.role is Role.user
    assert updated.created_at == admin.created_at
    assert updated.updated_at >= admin.updated_at


def test_update_with_no_fields_still_refreshes_updated_at(store, admin):
    updated = store.update(admin.id)
    assert updated.name == admin.name
    assert updated.updated_at >= admin.updated_at


def test_update_password_rehashes(store, hasher, admin):
    old_hash = store.find_by_email(admin.email).password_hash
    store.update(admin.id, password="newpassword")
    new_hash = store.find_by_email(admin.email).password_hash
    assert new_hash != old_hash
    assert hasher.verify("newpassword", new_hash)
    assert not hasher.verify("password", new_hash)


def test_update_unknown_id(store):
    with pytest.raises(NotFound):
        store.update(42, name="Ghost")


# ---------------------------------------------------------------------------
# remove / list
# ---------------------------------------------------------------------------


def test_remove_returns_removed_record(store, admin):
    removed = store.remove(admin.id)
    assert removed.id == admin.id
    assert store.count() == 0
    with pytest.raises(NotFound):
        store.find_by_id(admin.id)


def test_remove_unknown_id_leaves_registry_unchanged(store, admin):
    with pytest.raises(NotFound):
        store.remove(999)
    assert [u.id for u in store.list_users()] == [admin.id]


def test_removed_ids_are_not_reused(store, admin):
    store.remove(admin.id)
    again = store.create("Admin User", "admin@example.com", "password")
    assert again.id != admin.id


def test_list_users_insertion_order_and_sanitized(store):
    emails = ["c@example.com", "a@example.com", "b@example.com"]
    for i, email in enumerate(emails):
        store.create(f"User {i}", email, "password")
    listed = store.list_users()
    assert [u.email for u in listed] == emails
    assert all("password_hash" not in {f.name for f in fields(u)} for u in listed)


def test_has_users(store):
    assert store.has_users() is False
    store.create("Only", "only@example.com", "password")
    assert store.has_users() is True


# ---------------------------------------------------------------------------
# concurrency / storage
# ---------------------------------------------------------------------------


def test_concurrent_updates_are_serialized(tmp_path, hasher):
    s = UserStore(f"sqlite:///{tmp_path / 'concurrency.db'}", hasher)
    user = s.create("Counter", "counter@example.com", "password")
    errors: list[Exception] = []

    def rename(i: int) -> None:
        try:
            s.update(user.id, name=f"name-{i}")
        except Exception as exc:  # surfaced below
            errors.append(exc)

    threads = [threading.Thread(target=rename, args=(i,)) for i in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert errors == []
    assert s.find_by_id(user.id).name.startswith("name-")
    s.close()


def test_storage_failure_is_distinct_from_domain_errors(tmp_path, hasher):
    s = UserStore(f"sqlite:///{tmp_path / 'gone.db'}", hasher)
    with s.engine.begin() as conn:
        conn.exec_driver_sql("DROP TABLE users")
    with pytest.raises(StorageUnavailable):
        s.list_users()
    s.close()
