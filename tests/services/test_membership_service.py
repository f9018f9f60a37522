"""Membership rules: who may invite, join, leave, remove and update."""

from __future__ import annotations

import asyncio
from datetime import UTC, datetime, timedelta

import pytest

from app.models.activity import ActivityAction
from app.models.invitation import InvitationStatus
from app.models.organization import OrganizationRole
from app.repos.unit_of_work import memory_uow
from app.services import membership_service as svc
from app.services.email_service import InMemoryEmailClient
from app.services.errors import (
    ConflictError,
    ForbiddenError,
    NotFoundError,
    ValidationFailed,
)
from tests.conftest import add_test_member, create_test_org, create_test_user

NOW = datetime(2026, 3, 1, 9, 0, tzinfo=UTC)


@pytest.fixture
def org_and_owner():
    owner = create_test_user("owner@example.com", name="Olive Owner")
    return create_test_org(owner, "acme", max_seats=4)


def _invite(actor, email="new@example.com", role=OrganizationRole.MEMBER, **kw):
    return asyncio.run(
        svc.invite_member(memory_uow, actor, email=email, role=role, now=NOW, **kw)
    )


def _reload(user):
    return asyncio.run(memory_uow.users.get_by_id(user.id))


# ---- create ----


def test_create_organization_makes_caller_owner() -> None:
    user = create_test_user("founder@example.com")

    org = asyncio.run(
        svc.create_organization(memory_uow, user, name="Globex", slug="globex", now=NOW)
    )

    founder = _reload(user)
    assert founder.organization_id == org.id
    assert founder.organization_role is OrganizationRole.OWNER
    assert org.trial_ends_at == NOW + timedelta(days=14)
    actions = [a.action for a in asyncio.run(memory_uow.activity.list_by_org(org.id))]
    assert actions == [ActivityAction.ORGANIZATION_CREATED]


def test_create_organization_rejects_member_of_another(org_and_owner) -> None:
    _, owner = org_and_owner
    with pytest.raises(ConflictError, match="already part of an organization"):
        asyncio.run(svc.create_organization(memory_uow, owner, name="Two", slug="two"))


def test_create_organization_rejects_taken_slug(org_and_owner) -> None:
    user = create_test_user("x@example.com")
    with pytest.raises(ConflictError, match="slug already exists"):
        asyncio.run(svc.create_organization(memory_uow, user, name="Acme", slug="acme"))


# ---- invite ----


def test_owner_invites_and_email_is_sent(org_and_owner) -> None:
    org, owner = org_and_owner
    mail = InMemoryEmailClient()

    invitation = _invite(owner, "New@Example.com", message="Welcome!", email_client=mail)

    assert invitation.email == "new@example.com"
    assert invitation.status is InvitationStatus.PENDING
    assert invitation.expires_at == NOW + timedelta(days=7)
    assert len(mail.outbox) == 1
    assert invitation.token in mail.outbox[0].html


def test_admin_may_invite_member_may_not(org_and_owner) -> None:
    org, _ = org_and_owner
    admin = add_test_member(org, "admin@example.com", OrganizationRole.ADMIN)
    member = add_test_member(org, "member@example.com")

    assert _invite(admin).organization_id == org.id
    with pytest.raises(ForbiddenError):
        _invite(member, "other@example.com")


def test_invite_requires_organization() -> None:
    loner = create_test_user("loner@example.com")
    with pytest.raises(ValidationFailed, match="not part of an organization"):
        _invite(loner)


def test_invite_rejects_owner_role(org_and_owner) -> None:
    _, owner = org_and_owner
    with pytest.raises(ValidationFailed, match="OWNER"):
        _invite(owner, role=OrganizationRole.OWNER)


def test_invite_blocked_when_seats_full(org_and_owner) -> None:
    org, owner = org_and_owner
    add_test_member(org, "a@example.com")
    add_test_member(org, "b@example.com")
    add_test_member(org, "c@example.com")

    with pytest.raises(ValidationFailed, match="maximum seat limit"):
        _invite(owner)


def test_invite_rejects_existing_member(org_and_owner) -> None:
    org, owner = org_and_owner
    add_test_member(org, "member@example.com")
    with pytest.raises(ConflictError, match="already a member"):
        _invite(owner, "member@example.com")


def test_duplicate_pending_invitation_rejected(org_and_owner) -> None:
    _, owner = org_and_owner
    _invite(owner)
    with pytest.raises(ConflictError, match="already sent"):
        _invite(owner)


def test_expired_pending_invitation_can_be_replaced(org_and_owner) -> None:
    _, owner = org_and_owner
    first = asyncio.run(
        svc.invite_member(
            memory_uow,
            owner,
            email="new@example.com",
            role=OrganizationRole.MEMBER,
            now=NOW - timedelta(days=8),
        )
    )

    second = _invite(owner)

    assert second.id != first.id
    old = asyncio.run(memory_uow.invitations.get_by_id(first.id))
    assert old.status is InvitationStatus.EXPIRED


def test_invitation_email_failure_keeps_invitation(org_and_owner) -> None:
    _, owner = org_and_owner
    mail = InMemoryEmailClient()
    mail.fail_next = True

    invitation = _invite(owner, email_client=mail)

    assert asyncio.run(memory_uow.invitations.get_by_token(invitation.token)) is not None


# ---- accept ----


def test_accept_joins_with_invited_role(org_and_owner) -> None:
    org, owner = org_and_owner
    invitation = _invite(owner, role=OrganizationRole.ADMIN)
    invitee = create_test_user("new@example.com")

    joined = asyncio.run(
        svc.accept_invitation(memory_uow, invitee, token=invitation.token, now=NOW)
    )

    assert joined.id == org.id
    invitee = _reload(invitee)
    assert invitee.organization_id == org.id
    assert invitee.organization_role is OrganizationRole.ADMIN
    stored = asyncio.run(memory_uow.invitations.get_by_id(invitation.id))
    assert stored.status is InvitationStatus.ACCEPTED
    assert stored.accepted_at == NOW


def test_accept_unknown_token() -> None:
    user = create_test_user("new@example.com")
    with pytest.raises(NotFoundError, match="Invalid invitation"):
        asyncio.run(svc.accept_invitation(memory_uow, user, token="nope"))


def test_accept_requires_matching_email(org_and_owner) -> None:
    _, owner = org_and_owner
    invitation = _invite(owner)
    stranger = create_test_user("stranger@example.com")
    with pytest.raises(ValidationFailed, match="does not match"):
        asyncio.run(
            svc.accept_invitation(memory_uow, stranger, token=invitation.token, now=NOW)
        )


def test_accept_expired_marks_row_expired(org_and_owner) -> None:
    _, owner = org_and_owner
    invitation = _invite(owner)
    invitee = create_test_user("new@example.com")

    with pytest.raises(ValidationFailed, match="expired"):
        asyncio.run(
            svc.accept_invitation(
                memory_uow, invitee, token=invitation.token, now=NOW + timedelta(days=8)
            )
        )

    stored = asyncio.run(memory_uow.invitations.get_by_id(invitation.id))
    assert stored.status is InvitationStatus.EXPIRED


def test_accept_twice_is_rejected(org_and_owner) -> None:
    _, owner = org_and_owner
    invitation = _invite(owner)
    invitee = create_test_user("new@example.com")
    asyncio.run(svc.accept_invitation(memory_uow, invitee, token=invitation.token, now=NOW))

    with pytest.raises(ValidationFailed, match="no longer valid"):
        asyncio.run(
            svc.accept_invitation(memory_uow, _reload(invitee), token=invitation.token)
        )


def test_accept_rejects_user_already_in_an_organization(org_and_owner) -> None:
    _, owner = org_and_owner
    invitation = _invite(owner)
    other_owner = create_test_user("other-owner@example.com")
    other_org, _ = create_test_org(other_owner, "other")
    invitee = add_test_member(other_org, "new@example.com")

    with pytest.raises(ConflictError, match="already part of an organization"):
        asyncio.run(svc.accept_invitation(memory_uow, invitee, token=invitation.token, now=NOW))


# ---- leave / remove ----


def test_member_leaves(org_and_owner) -> None:
    org, _ = org_and_owner
    member = add_test_member(org, "member@example.com")
    before = len(asyncio.run(memory_uow.activity.list_by_org(org.id)))

    asyncio.run(svc.leave_organization(memory_uow, member, now=NOW))

    member = _reload(member)
    assert member.organization_id is None
    assert member.organization_role is None
    assert asyncio.run(memory_uow.users.count_by_org(org.id)) == 1

    activity = asyncio.run(memory_uow.activity.list_by_org(org.id))
    assert len(activity) == before + 1
    assert activity[0].action is ActivityAction.MEMBER_LEFT
    assert activity[0].user_id == member.id


def test_owner_cannot_leave(org_and_owner) -> None:
    _, owner = org_and_owner
    with pytest.raises(ValidationFailed, match="owner cannot leave"):
        asyncio.run(svc.leave_organization(memory_uow, owner))


def test_admin_removes_member(org_and_owner) -> None:
    org, _ = org_and_owner
    admin = add_test_member(org, "admin@example.com", OrganizationRole.ADMIN)
    member = add_test_member(org, "member@example.com")

    asyncio.run(svc.remove_member(memory_uow, admin, member_id=member.id, now=NOW))

    assert _reload(member).organization_id is None
    actions = [a.action for a in asyncio.run(memory_uow.activity.list_by_org(org.id))]
    assert ActivityAction.MEMBER_REMOVED in actions


def test_owner_cannot_be_removed(org_and_owner) -> None:
    org, owner = org_and_owner
    admin = add_test_member(org, "admin@example.com", OrganizationRole.ADMIN)
    with pytest.raises(ValidationFailed, match="Cannot remove organization owner"):
        asyncio.run(svc.remove_member(memory_uow, admin, member_id=owner.id))


def test_remove_member_of_other_org_is_not_found(org_and_owner) -> None:
    _, owner = org_and_owner
    other_owner = create_test_user("other@example.com")
    other_org, _ = create_test_org(other_owner, "other")
    outsider = add_test_member(other_org, "outsider@example.com")

    with pytest.raises(NotFoundError):
        asyncio.run(svc.remove_member(memory_uow, owner, member_id=outsider.id))


# ---- update ----


def test_only_owner_updates(org_and_owner) -> None:
    org, owner = org_and_owner
    admin = add_test_member(org, "admin@example.com", OrganizationRole.ADMIN)

    with pytest.raises(ForbiddenError, match="Only organization owner"):
        asyncio.run(svc.update_organization(memory_uow, admin, {"name": "New"}))

    updated = asyncio.run(
        svc.update_organization(
            memory_uow,
            owner,
            {"name": "Acme Learning", "domains": ["Acme.COM "], "max_seats": 20},
            now=NOW,
        )
    )
    assert updated.name == "Acme Learning"
    assert updated.domains == ("acme.com",)
    assert updated.max_seats == 20
    assert asyncio.run(memory_uow.organizations.get_by_id(org.id)).name == "Acme Learning"


def test_max_seats_cannot_drop_below_members(org_and_owner) -> None:
    org, owner = org_and_owner
    add_test_member(org, "a@example.com")
    with pytest.raises(ValidationFailed, match="less than current member count"):
        asyncio.run(svc.update_organization(memory_uow, owner, {"max_seats": 1}))


def test_update_rejects_unknown_fields(org_and_owner) -> None:
    _, owner = org_and_owner
    with pytest.raises(ValidationFailed, match="slug"):
        asyncio.run(svc.update_organization(memory_uow, owner, {"slug": "hijack"}))


@pytest.mark.parametrize("field", ["name", "max_seats", "domains", "allow_self_signup"])
def test_update_cannot_null_required_settings(org_and_owner, field) -> None:
    org, owner = org_and_owner
    with pytest.raises(ValidationFailed, match="cannot be cleared"):
        asyncio.run(svc.update_organization(memory_uow, owner, {field: None}))
    assert asyncio.run(memory_uow.organizations.get_by_id(org.id)) == org


def test_update_may_clear_description(org_and_owner) -> None:
    _, owner = org_and_owner
    updated = asyncio.run(
        svc.update_organization(memory_uow, owner, {"description": None}, now=NOW)
    )
    assert updated.description is None


# ---- read ----


def test_get_organization_includes_live_seat_count(org_and_owner) -> None:
    org, owner = org_and_owner
    add_test_member(org, "a@example.com")

    found, used = asyncio.run(svc.get_organization(memory_uow, owner))

    assert found.id == org.id
    assert used == 2
    loner = create_test_user("loner@example.com")
    assert asyncio.run(svc.get_organization(memory_uow, loner)) is None


def test_pending_list_drops_and_expires_stale_rows(org_and_owner) -> None:
    _, owner = org_and_owner
    stale = asyncio.run(
        svc.invite_member(
            memory_uow,
            owner,
            email="old@example.com",
            role=OrganizationRole.MEMBER,
            now=NOW - timedelta(days=8),
        )
    )
    fresh = _invite(owner, "fresh@example.com")

    pending = asyncio.run(svc.list_pending_invitations(memory_uow, owner, now=NOW))

    assert [p.invitation.id for p in pending] == [fresh.id]
    assert pending[0].sender is not None
    assert pending[0].sender.email == "owner@example.com"
    stored = asyncio.run(memory_uow.invitations.get_by_id(stale.id))
    assert stored.status is InvitationStatus.EXPIRED


def test_cancel_invitation(org_and_owner) -> None:
    _, owner = org_and_owner
    invitation = _invite(owner)

    asyncio.run(svc.cancel_invitation(memory_uow, owner, invitation_id=invitation.id, now=NOW))

    stored = asyncio.run(memory_uow.invitations.get_by_id(invitation.id))
    assert stored.status is InvitationStatus.REJECTED
    with pytest.raises(ValidationFailed, match="no longer pending"):
        asyncio.run(svc.cancel_invitation(memory_uow, owner, invitation_id=invitation.id))
