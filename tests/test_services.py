"""Tests for service accounts — management and service-authenticated routes."""

import pytest

from spacegate.errors import ForbiddenError, NotFoundError, ValidationError
from spacegate.extensions import db
from spacegate.models.audit import SpaceLogAction
from spacegate.models.service_account import ServiceAccount, ServiceAccountKind
from spacegate.services import (
    credential_service,
    service_account_service,
    space_service,
    token_service,
)


@pytest.fixture
def space(member):
    space = space_service.create_space(member, "Hackerspace")
    db.session.commit()
    return space


@pytest.fixture
def actor_service(member, space):
    service = service_account_service.create_service(
        member, "door", ServiceAccountKind.SPACE_ACTOR, space_id=space.id
    )
    db.session.commit()
    return service


class TestCreateService:
    def test_space_service_by_owner(self, member, space):
        service = service_account_service.create_service(
            member, "watcher", ServiceAccountKind.SPACE_EVENT_WATCHER, space_id=space.id
        )
        assert service.space_id == space.id
        assert service.account_kind is ServiceAccountKind.SPACE_EVENT_WATCHER

    def test_space_kind_needs_space(self, member):
        with pytest.raises(ValidationError):
            service_account_service.create_service(
                member, "door", ServiceAccountKind.SPACE_ACTOR
            )

    def test_unknown_space(self, member):
        with pytest.raises(NotFoundError):
            service_account_service.create_service(
                member, "door", ServiceAccountKind.SPACE_ACTOR, space_id="missing"
            )

    def test_foreign_space_forbidden(self, make_user, space):
        other = make_user("other", level=10)
        with pytest.raises(ForbiddenError):
            service_account_service.create_service(
                other, "door", ServiceAccountKind.SPACE_ACTOR, space_id=space.id
            )

    def test_ssh_authority_needs_services_manage(self, member):
        with pytest.raises(ForbiddenError):
            service_account_service.create_service(
                member, "sshd", ServiceAccountKind.SSH_AUTHORITY
            )

    def test_ssh_authority_has_no_space(self, admin, space):
        with pytest.raises(ValidationError):
            service_account_service.create_service(
                admin, "sshd", ServiceAccountKind.SSH_AUTHORITY, space_id=space.id
            )

    @pytest.mark.parametrize("name", [5, ["door"]])
    def test_non_string_name(self, member, space, name):
        with pytest.raises(ValidationError):
            service_account_service.create_service(
                member, name, ServiceAccountKind.SPACE_ACTOR, space_id=space.id
            )

    def test_non_string_space_id(self, member):
        with pytest.raises(ValidationError):
            service_account_service.create_service(
                member, "door", ServiceAccountKind.SPACE_ACTOR, space_id=7
            )

    def test_unknown_kind(self, admin):
        with pytest.raises(ValidationError):
            service_account_service.create_service(admin, "x", 42)

    def test_needs_services_permission(self, make_user):
        moderator = make_user("mod", level=90)
        with pytest.raises(ForbiddenError):
            service_account_service.create_service(
                moderator, "sshd", ServiceAccountKind.SSH_AUTHORITY
            )


class TestManageService:
    def test_tokens(self, member, actor_service):
        token = service_account_service.issue_service_token(member, actor_service.id)
        db.session.commit()

        assert token.startswith("acs_")
        assert token_service.validate(token).subject.id == actor_service.id
        assert service_account_service.count_service_tokens(member, actor_service.id) == 1

        assert service_account_service.revoke_service_tokens(member, actor_service.id) == 1
        assert service_account_service.count_service_tokens(member, actor_service.id) == 0

    def test_stranger_cannot_manage(self, make_user, actor_service):
        stranger = make_user("stranger", level=10)
        with pytest.raises(ForbiddenError):
            service_account_service.issue_service_token(stranger, actor_service.id)

    def test_services_manage_can_manage_any(self, admin, actor_service):
        assert service_account_service.get_service(admin, actor_service.id) is not None

    def test_list(self, member, admin, actor_service):
        assert [s.id for s in service_account_service.list_services(member)] == [actor_service.id]
        assert service_account_service.list_services(admin) == []
        assert len(service_account_service.list_services(admin, all=True)) == 1
        with pytest.raises(ForbiddenError):
            service_account_service.list_services(member, all=True)

    def test_list_space_services(self, member, admin, make_user, space, actor_service):
        assert service_account_service.list_space_services(member, space.id) == [actor_service]
        assert service_account_service.list_space_services(admin, space.id) == [actor_service]
        stranger = make_user("stranger", level=10)
        with pytest.raises(ForbiddenError):
            service_account_service.list_space_services(stranger, space.id)

    def test_delete_space_deletes_services(self, member, space, actor_service):
        service_id = actor_service.id
        token_service.issue_service_token(actor_service)
        db.session.commit()

        space_service.delete_space(member, space.id)
        db.session.commit()
        assert db.session.get(ServiceAccount, service_id) is None


class TestServiceOperations:
    def test_report_action(self, actor_service, space):
        entry = service_account_service.report_action(
            actor_service, SpaceLogAction.KEYCARD_SCANNED, account_id="alice"
        )
        db.session.commit()
        assert entry.space_id == space.id
        assert entry.action == SpaceLogAction.KEYCARD_SCANNED

    def test_report_non_reportable(self, actor_service):
        with pytest.raises(ValidationError):
            service_account_service.report_action(actor_service, SpaceLogAction.SPACE_CREATED)

    def test_report_non_string_ids(self, actor_service):
        with pytest.raises(ValidationError):
            service_account_service.report_action(
                actor_service, SpaceLogAction.ITEM_TAKEN, item_id={"id": 1}
            )

    def test_watcher_cannot_report(self, member, space):
        watcher = service_account_service.create_service(
            member, "watch", ServiceAccountKind.SPACE_EVENT_WATCHER, space_id=space.id
        )
        with pytest.raises(ForbiddenError):
            service_account_service.report_action(watcher, SpaceLogAction.ITEM_TAKEN)
        assert len(service_account_service.read_log(watcher)) == 1

    def test_ssh_lookup(self, admin, member, make_ssh_key):
        sshd = service_account_service.create_service(
            admin, "sshd", ServiceAccountKind.SSH_AUTHORITY
        )
        key = credential_service.register_ssh_key(member, *make_ssh_key())
        db.session.commit()

        found = service_account_service.lookup_ssh_keys(sshd, f"SHA256:{key.fingerprint}")
        assert [k.owner_id for k in found] == [member.id]

    def test_ssh_lookup_needs_authority(self, actor_service):
        with pytest.raises(ForbiddenError):
            service_account_service.lookup_ssh_keys(actor_service, "abc")


class TestServiceRoutes:
    def test_actor_flow(self, client, member, auth, actor_service):
        service_headers = auth(actor_service)

        resp = client.post(
            "/services/actions",
            json={"action": int(SpaceLogAction.ITEM_TAKEN), "item_id": "x"},
            headers=service_headers,
        )
        assert resp.status_code == 201

        resp = client.get("/services/logs", headers=service_headers)
        actions = [e["action"] for e in resp.get_json()["entries"]]
        assert SpaceLogAction.ITEM_TAKEN in actions

    def test_service_token_rejected_on_user_routes(self, client, auth, actor_service):
        resp = client.get("/users/me", headers=auth(actor_service))
        assert resp.status_code == 403

    def test_user_token_rejected_on_service_routes(self, client, member, auth):
        resp = client.get("/services/logs", headers=auth(member))
        assert resp.status_code == 403

    def test_create_and_issue_token_routes(self, client, member, auth, space):
        headers = auth(member)
        resp = client.post(
            "/services",
            json={"name": "door", "kind": 1001, "space_id": space.id},
            headers=headers,
        )
        assert resp.status_code == 201
        service_id = resp.get_json()["service"]["id"]

        resp = client.post(f"/services/{service_id}/tokens", headers=headers)
        assert resp.status_code == 201
        token = resp.get_json()["token"]

        resp = client.get("/services/logs", headers={"Authorization": f"Bearer {token}"})
        assert resp.status_code == 200

        resp = client.delete(f"/services/{service_id}/tokens", headers=headers)
        assert resp.get_json()["revoked"] == 1
        resp = client.get("/services/logs", headers={"Authorization": f"Bearer {token}"})
        assert resp.status_code == 401

    def test_non_string_name_route(self, client, member, auth, space):
        resp = client.post(
            "/services",
            json={"name": 5, "kind": 1001, "space_id": space.id},
            headers=auth(member),
        )
        assert resp.status_code == 400
        assert resp.get_json()["error"] == "ValidationError"
