"""Turn invite codes into memberships (staff) or child links (parent).

Staff redemption
    Validation is read-only until the very last step, where one atomic
    ``consume`` checks expiry and capacity before taking the use.
    Only a successful consume is followed by the membership write; if that
    write fails the use is released again before the error propagates.

Parent redemption
    The child link and parent link are separate writes with no shared
    transaction.  A ``LinkIntent`` is written first and marked
    complete last; ``reconcile_pending_links`` re-applies any intent left
    pending by a crash part-way through.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from uuid import UUID

from membership_service.core.clock import utcnow
from membership_service.core.errors import (
    InviteExhaustedError,
    InviteExpiredError,
    NotFoundError,
    OrganizationInactiveError,
)
from membership_service.core.metrics import INVITE_REDEMPTIONS
from membership_service.models.billing import CHILDREN, SPECIALISTS
from membership_service.models.child import ChildOrgLink, LinkIntent
from membership_service.models.invite import ConsumeOutcome, ParentInvite
from membership_service.models.organization import (
    Membership,
    Organization,
    display_name_from_email,
)
from membership_service.repos.store import Store
from membership_service.services.invite_issuer import (
    normalize_parent_code,
    normalize_staff_code,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class StaffRedemption:
    org_id: UUID
    org_name: str
    role: str
    already_member: bool = False


@dataclass(frozen=True, slots=True)
class ParentRedemption:
    org_id: UUID
    org_name: str
    child_id: str
    parent_uid: str
    specialist_id: str


@dataclass(frozen=True, slots=True)
class ParentInvitePreview:
    code: str
    org_id: UUID
    org_name: str
    specialist_id: str
    specialist_name: str


def _reject(kind: str, outcome: str, error: Exception) -> Exception:
    INVITE_REDEMPTIONS.labels(kind=kind, outcome=outcome).inc()
    logger.warning("Invite redemption rejected: kind=%s outcome=%s", kind, outcome)
    return error


# ---------------------------------------------------------------------------
# Staff invites
# ---------------------------------------------------------------------------


async def redeem_org_invite(
    store: Store,
    code: str,
    subject_id: str,
    email: str = "",
    *,
    now: datetime | None = None,
) -> StaffRedemption:
    now = now or utcnow()
    code = normalize_staff_code(code)

    invite = await store.org_invites.get(code)
    if invite is None:
        raise _reject("staff", "not_found", NotFoundError("Invalid invite code"))
    if invite.is_expired(now):
        raise _reject("staff", "expired", InviteExpiredError("Invite code has expired"))

    org = await store.orgs.get_by_id(invite.org_id)
    if org is None:
        raise _reject("staff", "not_found", NotFoundError("Organization not found"))
    if not org.is_active:
        raise _reject(
            "staff", "inactive", OrganizationInactiveError("Organization is inactive")
        )

    existing = await store.memberships.get(org.id, subject_id)
    if existing is not None and existing.is_active:
        INVITE_REDEMPTIONS.labels(kind="staff", outcome="already_member").inc()
        logger.info("Invite redeemed by existing member: user=%s org=%s", subject_id, org.id)
        return StaffRedemption(
            org_id=org.id, org_name=org.name, role=existing.role, already_member=True
        )

    # consume checks the redeemer set before capacity, so a subject that
    # already holds a use is never reported as exhausted.
    outcome = await store.org_invites.consume(code, subject_id, now)
    if outcome is ConsumeOutcome.ALREADY_REDEEMED:
        current = await store.memberships.get(org.id, subject_id)
        if current is not None and not current.is_active:
            # Removed since redeeming this code: rejoin on the use already held.
            await _write_membership(store, org, subject_id, invite.role, email, current, now)
            INVITE_REDEMPTIONS.labels(kind="staff", outcome="rejoined").inc()
            logger.info(
                "Invite redeemed again after removal: user=%s org=%s role=%s",
                subject_id,
                org.id,
                invite.role,
            )
            return StaffRedemption(org_id=org.id, org_name=org.name, role=invite.role)
        # Otherwise a concurrent request by the same subject took the use
        # and its membership write is the one that counts.
        INVITE_REDEMPTIONS.labels(kind="staff", outcome="already_member").inc()
        return StaffRedemption(
            org_id=org.id, org_name=org.name, role=invite.role, already_member=True
        )
    if outcome is ConsumeOutcome.MISSING:
        raise _reject("staff", "not_found", NotFoundError("Invalid invite code"))
    if outcome is ConsumeOutcome.EXPIRED:
        raise _reject("staff", "expired", InviteExpiredError("Invite code has expired"))
    if outcome is ConsumeOutcome.EXHAUSTED:
        raise _reject(
            "staff", "exhausted", InviteExhaustedError("Invite code has reached max uses")
        )

    try:
        await _write_membership(store, org, subject_id, invite.role, email, existing, now)
    except Exception:
        logger.exception(
            "Membership write failed after consuming invite; releasing use: "
            "user=%s org=%s",
            subject_id,
            org.id,
        )
        await store.org_invites.release(code, subject_id)
        INVITE_REDEMPTIONS.labels(kind="staff", outcome="conflict").inc()
        raise

    INVITE_REDEMPTIONS.labels(kind="staff", outcome="joined").inc()
    logger.info(
        "Invite redeemed: user=%s org=%s role=%s", subject_id, org.id, invite.role
    )
    return StaffRedemption(org_id=org.id, org_name=org.name, role=invite.role)


async def _write_membership(
    store: Store,
    org: Organization,
    subject_id: str,
    role: str,
    email: str,
    existing: Membership | None,
    now: datetime,
) -> None:
    if existing is None:
        membership = Membership.active(
            org_id=org.id, user_id=subject_id, role=role, now=now, email=email
        )
    else:
        membership = existing.reactivated(role=role, now=now, email=email)
    # Redemptions are not plan-gated; the counter still tracks them.
    # Counter first: an active membership is never left uncounted.
    await store.counters.try_increment(org.id, SPECIALISTS, None)
    try:
        await store.memberships.upsert(membership)
    except Exception:
        await store.counters.decrement(org.id, SPECIALISTS)
        raise


# ---------------------------------------------------------------------------
# Parent invites
# ---------------------------------------------------------------------------


async def _load_parent_invite(
    store: Store, code: str, now: datetime
) -> tuple[ParentInvite, Organization, Membership]:
    invite = await store.parent_invites.get(normalize_parent_code(code))
    if invite is None:
        raise _reject("parent", "not_found", NotFoundError("Invalid invite code"))
    if invite.is_expired(now):
        raise _reject("parent", "expired", InviteExpiredError("Invite code has expired"))

    org = await store.orgs.get_by_id(invite.org_id)
    if org is None:
        raise _reject("parent", "not_found", NotFoundError("Organization not found"))
    if not org.is_active:
        raise _reject(
            "parent", "inactive", OrganizationInactiveError("Organization is inactive")
        )

    specialist = await store.memberships.get(org.id, invite.specialist_id)
    if specialist is None or not specialist.is_active:
        raise _reject("parent", "not_found", NotFoundError("Specialist not found"))
    return invite, org, specialist


async def validate_parent_invite(
    store: Store, code: str, *, now: datetime | None = None
) -> ParentInvitePreview:
    """Check a parent code without using it."""
    invite, org, specialist = await _load_parent_invite(store, code, now or utcnow())
    return ParentInvitePreview(
        code=invite.code,
        org_id=org.id,
        org_name=org.name,
        specialist_id=specialist.user_id,
        specialist_name=specialist.display_name or display_name_from_email(specialist.email),
    )


async def redeem_parent_invite(
    store: Store,
    code: str,
    child_id: str,
    parent_uid: str,
    *,
    now: datetime | None = None,
) -> ParentRedemption:
    now = now or utcnow()
    child_id = child_id.strip()
    if not child_id:
        raise NotFoundError("Child not found")

    invite, org, specialist = await _load_parent_invite(store, code, now)

    intent = LinkIntent.new(
        org_id=org.id,
        child_id=child_id,
        parent_uid=parent_uid,
        specialist_id=specialist.user_id,
        invite_code=invite.code,
        now=now,
    )
    await store.link_intents.add(intent)
    await _apply_link(store, intent, org.name, now)
    await store.link_intents.mark_complete(intent.id, now)

    try:
        await store.parent_invites.record_use(invite.code)
    except Exception:
        # The link is the user-visible outcome and stands; the counter is audit only.
        logger.exception(
            "Parent invite use count not recorded (audit inconsistency): "
            "org=%s child=%s",
            org.id,
            child_id,
        )

    INVITE_REDEMPTIONS.labels(kind="parent", outcome="linked").inc()
    logger.info(
        "Parent invite redeemed: org=%s child=%s specialist=%s parent=%s",
        org.id,
        child_id,
        specialist.user_id,
        parent_uid,
    )
    return ParentRedemption(
        org_id=org.id,
        org_name=org.name,
        child_id=child_id,
        parent_uid=parent_uid,
        specialist_id=specialist.user_id,
    )


async def _apply_link(
    store: Store, intent: LinkIntent, org_name: str, now: datetime
) -> None:
    """Write the child link and the parent link.  Safe to run twice."""
    previous = await store.child_links.get(intent.org_id, intent.child_id)
    await store.child_links.put(
        ChildOrgLink(
            org_id=intent.org_id,
            child_id=intent.child_id,
            assigned=True,
            assigned_at=now,
            assigned_specialist_id=intent.specialist_id,
            parent_uid=intent.parent_uid,
        )
    )
    if previous is None or not previous.assigned:
        await store.counters.try_increment(intent.org_id, CHILDREN, None)
    await store.parent_links.link(
        intent.parent_uid, intent.org_id, org_name, intent.child_id, now
    )


async def reconcile_pending_links(store: Store, *, now: datetime | None = None) -> int:
    """Finish every parent redemption that stopped part-way.

    Returns the number of intents completed.  Children counters of the
    touched orgs are recounted from the assigned links afterwards, since
    an interrupted run may or may not have bumped them.
    """
    now = now or utcnow()
    pending = await store.link_intents.list_pending()
    touched: set[UUID] = set()
    reconciled = 0
    for intent in pending:
        org = await store.orgs.get_by_id(intent.org_id)
        if org is None:
            logger.error("Pending link intent for missing org=%s", intent.org_id)
            continue
        await _apply_link(store, intent, org.name, now)
        await store.link_intents.mark_complete(intent.id, now)
        touched.add(org.id)
        reconciled += 1
        logger.info(
            "Reconciled link intent: org=%s child=%s", intent.org_id, intent.child_id
        )

    for org_id in touched:
        count = await store.child_links.count_assigned(org_id)
        await store.counters.set(org_id, CHILDREN, count)

    if pending:
        logger.info("Reconciliation finished: %d of %d intents", reconciled, len(pending))
    return reconciled
