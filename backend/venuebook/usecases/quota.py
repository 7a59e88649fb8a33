from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta

from ..domain.errors import NotFoundError, QuotaExceededError, SubscriptionInactiveError, ValidationError
from ..domain.repositories import SubscriptionRepository, VenueRepository
from ..domain.services import QUOTA_DIMENSIONS, Limit, QuotaAction, plan_limit
from ..models import Plan, Subscription, SubscriptionStatus
from ..utils.time import utc_now_naive

BILLING_CYCLE_DAYS = 30

_COUNTERS: dict[QuotaAction, str] = {
    QuotaAction.ACCEPT_BOOKING: "bookings_count",
    QuotaAction.SEND_MESSAGE: "messages_count",
}


@dataclass(frozen=True)
class QuotaDecision:
    action: QuotaAction
    subscription_id: int
    limit: Limit
    used: int


@dataclass(frozen=True)
class SubscriptionUsage:
    subscription: Subscription
    plan: Plan
    venues_used: int
    bookings_used: int
    messages_used: int

    @property
    def limits(self) -> dict[str, Limit]:
        return {QUOTA_DIMENSIONS[action]: plan_limit(self.plan, action) for action in QuotaAction}


def _cycle_length(plan: Plan) -> timedelta:
    return timedelta(days=min(plan.duration_days, BILLING_CYCLE_DAYS))


def cycle_expired(subscription: Subscription, now: datetime) -> bool:
    started = subscription.cycle_started_at or subscription.starts_at
    if started is None:
        return False
    return started + _cycle_length(subscription.plan) <= now


async def _load_active(
    sub_repo: SubscriptionRepository,
    owner_id: int,
    now: datetime,
    *,
    for_update: bool,
) -> Subscription:
    subscription = await sub_repo.get_current(owner_id, for_update=for_update)
    if subscription is None:
        raise SubscriptionInactiveError(owner_id)
    if subscription.status != SubscriptionStatus.ACTIVE:
        raise SubscriptionInactiveError(
            owner_id, f"subscription is {subscription.status}; complete payment or renew your plan"
        )
    if subscription.ends_at is None or subscription.ends_at <= now:
        raise SubscriptionInactiveError(owner_id, "subscription has expired; renew your plan")
    return subscription


async def _evaluate(
    sub_repo: SubscriptionRepository,
    venue_repo: VenueRepository | None,
    *,
    owner_id: int,
    action: QuotaAction,
    now: datetime,
    venue_id: int | None,
    consume: bool,
) -> QuotaDecision:
    subscription = await _load_active(sub_repo, owner_id, now, for_update=consume)
    limit = plan_limit(subscription.plan, action)
    dimension = QUOTA_DIMENSIONS[action]

    if action in (QuotaAction.CREATE_VENUE, QuotaAction.CREATE_COURT):
        if venue_repo is None:
            raise ValueError("venue repository required for capacity checks")
        if action == QuotaAction.CREATE_VENUE:
            current = await venue_repo.count_active_venues(owner_id)
        else:
            if venue_id is None:
                raise ValidationError("venue_id", "venue is required to add a court")
            current = await venue_repo.count_active_courts(venue_id)
        if not limit.allows(current):
            raise QuotaExceededError(dimension, limit.ceiling or 0, current)
        return QuotaDecision(action, subscription.id, limit, current)

    counter = _COUNTERS[action]
    current = getattr(subscription, counter)
    if cycle_expired(subscription, now):
        current = 0
        if consume:
            await sub_repo.reset_cycle(subscription, now)

    if not consume:
        if not limit.allows(current):
            raise QuotaExceededError(dimension, limit.ceiling or 0, current)
        return QuotaDecision(action, subscription.id, limit, current)

    if not await sub_repo.increment_with_ceiling(subscription.id, counter, limit.ceiling):
        raise QuotaExceededError(dimension, limit.ceiling or 0, current)
    return QuotaDecision(action, subscription.id, limit, current + 1)


async def check(
    sub_repo: SubscriptionRepository,
    venue_repo: VenueRepository | None,
    *,
    owner_id: int,
    action: QuotaAction,
    now: datetime | None = None,
    venue_id: int | None = None,
) -> QuotaDecision:
    """Answer whether `action` would be allowed right now without consuming anything."""
    return await _evaluate(
        sub_repo,
        venue_repo,
        owner_id=owner_id,
        action=action,
        now=now or utc_now_naive(),
        venue_id=venue_id,
        consume=False,
    )


async def check_and_consume(
    sub_repo: SubscriptionRepository,
    venue_repo: VenueRepository | None,
    *,
    owner_id: int,
    action: QuotaAction,
    now: datetime | None = None,
    venue_id: int | None = None,
) -> QuotaDecision:
    """
    Gate an owner action against the active plan.

    Counted dimensions (bookings, messages) are incremented with a conditional
    update that refuses to pass the ceiling, so concurrent callers cannot
    overshoot the limit. Venue/court limits compare against live row counts.
    """
    return await _evaluate(
        sub_repo,
        venue_repo,
        owner_id=owner_id,
        action=action,
        now=now or utc_now_naive(),
        venue_id=venue_id,
        consume=True,
    )


async def usage(
    sub_repo: SubscriptionRepository,
    venue_repo: VenueRepository,
    *,
    owner_id: int,
    now: datetime | None = None,
) -> SubscriptionUsage:
    now = now or utc_now_naive()
    subscription = await sub_repo.get_current(owner_id)
    if subscription is None:
        raise NotFoundError("no subscription found for this owner")
    fresh_cycle = cycle_expired(subscription, now)
    return SubscriptionUsage(
        subscription=subscription,
        plan=subscription.plan,
        venues_used=await venue_repo.count_active_venues(owner_id),
        bookings_used=0 if fresh_cycle else subscription.bookings_count,
        messages_used=0 if fresh_cycle else subscription.messages_count,
    )


async def subscribe(
    sub_repo: SubscriptionRepository,
    *,
    owner_id: int,
    plan_id: int,
    payment_proof_ref: str | None,
    utr: str | None,
    auto_activate: bool = False,
    now: datetime | None = None,
) -> Subscription:
    """Record a plan purchase; it stays pending_payment until an admin verifies the proof."""
    plan = await sub_repo.get_plan(plan_id)
    if plan is None or not plan.is_active:
        raise NotFoundError(f"plan {plan_id} not found")
    payment_proof_ref = (payment_proof_ref or "").strip() or None
    utr = (utr or "").strip() or None
    if plan.price > 0 and payment_proof_ref is None and utr is None:
        raise ValidationError("payment_proof_ref", "upload a payment proof or enter the UTR")
    subscription = await sub_repo.create(
        owner_id=owner_id,
        plan=plan,
        status=SubscriptionStatus.PENDING_PAYMENT,
        payment_proof_ref=payment_proof_ref,
        utr=utr,
    )
    if auto_activate:
        subscription = await _activate(sub_repo, subscription, now or utc_now_naive())
    return subscription


async def _activate(sub_repo: SubscriptionRepository, subscription: Subscription, now: datetime) -> Subscription:
    subscription.status = SubscriptionStatus.ACTIVE
    subscription.starts_at = now
    subscription.ends_at = now + timedelta(days=subscription.plan.duration_days)
    subscription.cycle_started_at = now
    subscription.bookings_count = 0
    subscription.messages_count = 0
    subscription.updated_at = now
    await sub_repo.save(subscription)
    await sub_repo.expire_active(subscription.owner_id, keep_id=subscription.id)
    return subscription


async def activate_subscription(
    sub_repo: SubscriptionRepository,
    *,
    subscription_id: int,
    now: datetime | None = None,
) -> Subscription:
    subscription = await sub_repo.get_for_update(subscription_id)
    if subscription is None:
        raise NotFoundError(f"subscription {subscription_id} not found")
    if subscription.status != SubscriptionStatus.PENDING_PAYMENT:
        raise ValidationError("status", f"subscription is {subscription.status}; only pending payments can be activated")
    return await _activate(sub_repo, subscription, now or utc_now_naive())
