"""Tests for spaces, platform accounts and items.

Covers:
- Access rules (owner needs `spaces`, others need `spaces_manage`)
- Account upsert semantics
- Item creation rules: keycards need an owner, owners must be accounts
  of the same space, serials are unique per space
- Two concurrent creations of one serial: exactly one wins
- Deleting an account cascades its items but keeps its log entries
- Each mutation writes exactly one log entry
"""

import threading
from unittest.mock import patch

import pytest

from spacegate import create_app
from spacegate.errors import (
    ForbiddenError,
    NotFoundError,
    SerialConflictError,
    ValidationError,
)
from spacegate.extensions import db
from spacegate.models.audit import SpaceLogAction, SpaceLogEntry
from spacegate.models.space import Space, SpaceAccount, SpaceItem, SpaceItemKind
from spacegate.models.user import User
from spacegate.services import audit_service, space_service


@pytest.fixture
def space(member):
    space = space_service.create_space(member, "Hackerspace")
    db.session.commit()
    return space


@pytest.fixture
def alice(member, space):
    account = space_service.upsert_account(member, space.id, "alice", display_name="Alice")
    db.session.commit()
    return account


def _actions(space_id):
    return [
        e.action
        for e in SpaceLogEntry.query.filter_by(space_id=space_id)
        .order_by(SpaceLogEntry.created_at, SpaceLogEntry.id)
        .all()
    ]


class TestSpaceAccess:
    def test_create_requires_spaces(self, make_user):
        default = make_user("plain", level=0)
        with pytest.raises(ForbiddenError):
            space_service.create_space(default, "Nope")

    def test_owner_can_rename(self, member, space):
        space_service.rename_space(member, space.id, "Makerspace")
        db.session.commit()
        assert db.session.get(Space, space.id).title == "Makerspace"

    def test_stranger_forbidden(self, make_user, space):
        stranger = make_user("stranger", level=10)
        with pytest.raises(ForbiddenError):
            space_service.get_space(stranger, space.id)

    def test_spaces_manage_can_access_others(self, make_user, space):
        moderator = make_user("mod", level=90)
        assert space_service.get_space(moderator, space.id).id == space.id

    def test_unknown_space(self, member):
        with pytest.raises(NotFoundError):
            space_service.get_space(member, "missing")

    def test_title_is_sanitized(self, member):
        space = space_service.create_space(member, "<b>Lab</b><script>x</script>")
        assert "<" not in space.title

    def test_empty_title(self, member):
        with pytest.raises(ValidationError):
            space_service.create_space(member, "   ")

    def test_delete_space_removes_everything(self, member, space, alice):
        item = space_service.create_item(member, space.id, "Card", "K-1", SpaceItemKind.KEYCARD, "alice")
        db.session.commit()
        space_id, item_id = space.id, item.id

        space_service.delete_space(member, space_id)
        db.session.commit()

        assert db.session.get(Space, space_id) is None
        assert db.session.get(SpaceItem, item_id) is None
        assert SpaceAccount.query.filter_by(space_id=space_id).count() == 0
        assert SpaceLogEntry.query.filter_by(space_id=space_id).count() == 0

    def test_list_own_spaces(self, member, space, admin):
        space_service.create_space(admin, "Admin's")
        db.session.commit()
        assert [s.id for s in space_service.list_spaces(member)] == [space.id]


class TestAccounts:
    def test_upsert_creates_then_updates(self, member, space, alice):
        space_service.upsert_account(member, space.id, "alice", platform_name="Alice A.")
        db.session.commit()

        account = space_service.get_account(member, space.id, "alice")
        assert account.platform_name == "Alice A."
        # Omitted display_name was left alone.
        assert account.display_name == "Alice"

    def test_explicit_null_clears(self, member, space, alice):
        space_service.upsert_account(member, space.id, "alice", display_name=None)
        db.session.commit()
        assert space_service.get_account(member, space.id, "alice").display_name is None

    def test_same_platform_id_in_two_spaces(self, member, space, alice):
        other = space_service.create_space(member, "Second")
        space_service.upsert_account(member, other.id, "alice")
        db.session.commit()
        assert SpaceAccount.query.filter_by(platform_id="alice").count() == 2

    def test_delete_account_cascades_items_keeps_log(self, member, space, alice):
        item = space_service.create_item(member, space.id, "Badge", "K-1", SpaceItemKind.KEYCARD, "alice")
        loose = space_service.create_item(member, space.id, "Drill", "D-1")
        db.session.commit()
        item_id, loose_id = item.id, loose.id

        space_service.delete_account(member, space.id, "alice")
        db.session.commit()

        assert db.session.get(SpaceItem, item_id) is None
        assert db.session.get(SpaceItem, loose_id) is not None

        entries = audit_service.entries_for_account(space.id, "alice")
        assert entries
        assert all(e.account is None for e in entries)
        assert SpaceLogAction.ACCOUNT_DELETED in [e.action for e in entries]

        item_entries = audit_service.entries_for_item(space.id, item_id)
        assert [e.action for e in item_entries] == [SpaceLogAction.ITEM_CREATED]
        assert item_entries[0].item is None

    def test_get_missing_account(self, member, space):
        with pytest.raises(NotFoundError):
            space_service.get_account(member, space.id, "nobody")


class TestItems:
    def test_keycard_needs_owner(self, member, space):
        with pytest.raises(ValidationError):
            space_service.create_item(member, space.id, "Card", "K-1", SpaceItemKind.KEYCARD)

    def test_owner_must_exist_in_space(self, member, space, alice):
        other = space_service.create_space(member, "Other")
        db.session.commit()
        with pytest.raises(NotFoundError):
            space_service.create_item(member, other.id, "Card", "K-1", SpaceItemKind.KEYCARD, "alice")

    def test_unknown_kind(self, member, space):
        with pytest.raises(ValidationError):
            space_service.create_item(member, space.id, "Thing", "T-1", kind=7)

    def test_serial_conflict(self, member, space):
        space_service.create_item(member, space.id, "Drill", "S-1")
        db.session.commit()
        with pytest.raises(SerialConflictError):
            space_service.create_item(member, space.id, "Saw", "S-1")

    @patch("spacegate.services.space_service._owner_in_space")
    def test_owner_gone_at_flush(self, mock_check, member, space):
        """The owner passes the check but no longer exists when the row is written."""
        space_id = space.id
        with pytest.raises(NotFoundError):
            space_service.create_item(member, space_id, "Card", "K-1", SpaceItemKind.KEYCARD, "ghost")
        assert mock_check.called
        assert SpaceItem.query.filter_by(space_id=space_id).count() == 0

    @pytest.mark.parametrize("serial", [7, ["S-1"], {"s": 1}])
    def test_non_string_serial(self, member, space, serial):
        with pytest.raises(ValidationError):
            space_service.create_item(member, space.id, "Drill", serial)

    def test_non_string_title(self, member, space):
        with pytest.raises(ValidationError):
            space_service.create_item(member, space.id, 42, "S-1")

    def test_non_string_owner(self, member, space, alice):
        with pytest.raises(ValidationError):
            space_service.create_item(member, space.id, "Drill", "S-1", owner_id=5)

    def test_same_serial_other_space(self, member, space):
        other = space_service.create_space(member, "Other")
        space_service.create_item(member, space.id, "Drill", "S-1")
        space_service.create_item(member, other.id, "Drill", "S-1")
        db.session.commit()
        assert SpaceItem.query.filter_by(serial="S-1").count() == 2

    def test_assign_owner(self, member, space, alice):
        space_service.upsert_account(member, space.id, "bob")
        item = space_service.create_item(member, space.id, "Card", "K-1", SpaceItemKind.KEYCARD, "alice")
        db.session.commit()

        space_service.assign_item_owner(member, space.id, item.id, "bob")
        db.session.commit()
        assert db.session.get(SpaceItem, item.id).owner_id == "bob"

    def test_keycard_owner_cannot_be_cleared(self, member, space, alice):
        item = space_service.create_item(member, space.id, "Card", "K-1", SpaceItemKind.KEYCARD, "alice")
        db.session.commit()
        with pytest.raises(ValidationError):
            space_service.assign_item_owner(member, space.id, item.id, None)

    def test_normal_owner_can_be_cleared(self, member, space, alice):
        item = space_service.create_item(member, space.id, "Drill", "D-1", owner_id="alice")
        db.session.commit()
        space_service.assign_item_owner(member, space.id, item.id, None)
        db.session.commit()
        assert db.session.get(SpaceItem, item.id).owner_id is None

    def test_item_from_other_space_not_found(self, member, space):
        other = space_service.create_space(member, "Other")
        item = space_service.create_item(member, other.id, "Drill", "D-1")
        db.session.commit()
        with pytest.raises(NotFoundError):
            space_service.get_item(member, space.id, item.id)

    def test_list_items_by_owner(self, member, space, alice):
        space_service.create_item(member, space.id, "Card", "K-1", SpaceItemKind.KEYCARD, "alice")
        space_service.create_item(member, space.id, "Drill", "D-1")
        db.session.commit()
        items = space_service.list_items(member, space.id, owner_id="alice")
        assert [i.serial for i in items] == ["K-1"]


class TestMutationLog:
    """Every mutation appends exactly one entry."""

    def test_one_entry_per_mutation(self, member, space):
        space_service.rename_space(member, space.id, "Renamed")
        space_service.upsert_account(member, space.id, "alice")
        item = space_service.create_item(member, space.id, "Drill", "D-1", owner_id="alice")
        space_service.update_item(member, space.id, item.id, "Hammer drill")
        space_service.assign_item_owner(member, space.id, item.id, None)
        space_service.delete_item(member, space.id, item.id)
        space_service.delete_account(member, space.id, "alice")
        db.session.commit()

        assert sorted(_actions(space.id)) == sorted([
            SpaceLogAction.SPACE_CREATED,
            SpaceLogAction.SPACE_RENAMED,
            SpaceLogAction.ACCOUNT_UPSERTED,
            SpaceLogAction.ITEM_CREATED,
            SpaceLogAction.ITEM_UPDATED,
            SpaceLogAction.ITEM_OWNER_CHANGED,
            SpaceLogAction.ITEM_DELETED,
            SpaceLogAction.ACCOUNT_DELETED,
        ])

    def test_failed_mutation_writes_nothing(self, member, space):
        before = len(_actions(space.id))
        with pytest.raises(ValidationError):
            space_service.create_item(member, space.id, "Card", "K-1", SpaceItemKind.KEYCARD)
        db.session.rollback()
        assert len(_actions(space.id)) == before

    @patch("spacegate.services.space_service.audit_service.append")
    def test_log_failure_fails_the_mutation(self, mock_append, member, space):
        mock_append.side_effect = RuntimeError("log store unavailable")
        with pytest.raises(RuntimeError):
            space_service.create_item(member, space.id, "Drill", "D-1")
        db.session.rollback()
        assert SpaceItem.query.count() == 0

    def test_time_window(self, member, space):
        entries = audit_service.entries_for_space(space.id)
        created = entries[0].created_at
        assert audit_service.entries_for_space(space.id, since=created + 1) == []
        assert len(audit_service.entries_for_space(space.id, until=created)) == 1


class TestConcurrentSerial:
    """Two creations of the same (serial, space) racing: exactly one wins."""

    def test_race(self, tmp_path, app):
        race_app = create_app(
            "testing",
            {
                "SQLALCHEMY_DATABASE_URI": f"sqlite:///{tmp_path / 'race.db'}",
                "SQLALCHEMY_ENGINE_OPTIONS": {
                    "connect_args": {"check_same_thread": False, "timeout": 30},
                },
            },
        )
        with race_app.app_context():
            db.create_all()
            owner = User(name="owner", password_hash="x", access_level=10)
            db.session.add(owner)
            db.session.flush()
            space = Space(title="Race", owner_id=owner.id)
            db.session.add(space)
            db.session.commit()
            owner_id, space_id = owner.id, space.id

        barrier = threading.Barrier(2)
        results = []
        errors = []

        def worker(title):
            with race_app.app_context():
                try:
                    actor = db.session.get(User, owner_id)
                    barrier.wait()
                    space_service.create_item(actor, space_id, title, "SAME")
                    db.session.commit()
                    results.append("created")
                except SerialConflictError:
                    db.session.rollback()
                    results.append("conflict")
                except Exception as e:  # surfaced to the main thread below
                    db.session.rollback()
                    errors.append(e)

        threads = [threading.Thread(target=worker, args=(t,)) for t in ("A", "B")]
        for t in threads:
            t.start()
        for t in threads:
            t.join(timeout=30)

        assert errors == []
        assert sorted(results) == ["conflict", "created"]

        with race_app.app_context():
            assert SpaceItem.query.filter_by(space_id=space_id, serial="SAME").count() == 1
            db.session.remove()
            db.engine.dispose()


class TestSpaceRoutes:
    def test_full_flow(self, client, member, auth):
        headers = auth(member)

        resp = client.post("/spaces", json={"title": "Lab"}, headers=headers)
        assert resp.status_code == 201
        space_id = resp.get_json()["space"]["id"]

        resp = client.put(
            f"/spaces/{space_id}/accounts/alice",
            json={"display_name": "Alice"},
            headers=headers,
        )
        assert resp.status_code == 200

        resp = client.post(
            f"/spaces/{space_id}/items",
            json={"title": "Card", "serial": "K-1", "kind": 1, "owner_id": "alice"},
            headers=headers,
        )
        assert resp.status_code == 201
        item_id = resp.get_json()["item"]["id"]

        resp = client.post(
            f"/spaces/{space_id}/items",
            json={"title": "Card", "serial": "K-1"},
            headers=headers,
        )
        assert resp.status_code == 409
        assert resp.get_json()["error"] == "SerialConflict"

        resp = client.get(f"/spaces/{space_id}/items/{item_id}/logs", headers=headers)
        assert [e["action"] for e in resp.get_json()["entries"]] == [SpaceLogAction.ITEM_CREATED]

        resp = client.delete(f"/spaces/{space_id}/accounts/alice", headers=headers)
        assert resp.status_code == 200
        assert client.get(f"/spaces/{space_id}/items/{item_id}", headers=headers).status_code == 404

        resp = client.get(f"/spaces/{space_id}/accounts/alice/logs", headers=headers)
        assert len(resp.get_json()["entries"]) == 3

    def test_stranger_gets_403(self, client, member, make_user, auth, space):
        stranger = make_user("stranger", level=10)
        resp = client.get(f"/spaces/{space.id}", headers=auth(stranger))
        assert resp.status_code == 403

    def test_keycard_without_owner_is_400(self, client, member, auth, space):
        resp = client.post(
            f"/spaces/{space.id}/items",
            json={"title": "Card", "serial": "K-9", "kind": 1},
            headers=auth(member),
        )
        assert resp.status_code == 400

    def test_non_string_fields_are_400(self, client, member, auth, space):
        headers = auth(member)

        resp = client.post(
            f"/spaces/{space.id}/items", json={"title": "T", "serial": 7}, headers=headers
        )
        assert resp.status_code == 400
        assert resp.get_json()["error"] == "ValidationError"

        resp = client.post("/spaces", json={"title": ["Lab"]}, headers=headers)
        assert resp.status_code == 400

        resp = client.put(
            f"/spaces/{space.id}/accounts/alice", json={"display_name": 3}, headers=headers
        )
        assert resp.status_code == 400
        assert client.get(f"/spaces/{space.id}/accounts/alice", headers=headers).status_code == 404

    def test_space_services_route(self, client, member, make_user, auth, space):
        resp = client.post(
            "/services",
            json={"name": "door", "kind": 1001, "space_id": space.id},
            headers=auth(member),
        )
        service_id = resp.get_json()["service"]["id"]

        resp = client.get(f"/spaces/{space.id}/services", headers=auth(member))
        assert resp.status_code == 200
        assert [s["id"] for s in resp.get_json()["services"]] == [service_id]

        stranger = make_user("stranger", level=10)
        resp = client.get(f"/spaces/{space.id}/services", headers=auth(stranger))
        assert resp.status_code == 403


class TestUserSpaces:
    """Listing another user's spaces needs spaces_manage."""

    def test_manager_lists_others(self, make_user, member, space):
        moderator = make_user("mod", level=90)
        assert [s.id for s in space_service.list_user_spaces(moderator, member.id)] == [space.id]

    def test_without_spaces_manage(self, make_user, member, space):
        other = make_user("other", level=10)
        with pytest.raises(ForbiddenError):
            space_service.list_user_spaces(other, member.id)

    def test_unknown_user(self, admin):
        with pytest.raises(NotFoundError):
            space_service.list_user_spaces(admin, "missing")

    def test_route(self, client, admin, member, auth, space):
        resp = client.get(f"/users/{member.id}/spaces", headers=auth(admin))
        assert resp.status_code == 200
        assert [s["id"] for s in resp.get_json()["spaces"]] == [space.id]

        resp = client.get(f"/users/{admin.id}/spaces", headers=auth(member))
        assert resp.status_code == 403
