# app/background_tasks/workshop_tasks.py
"""
Periodic jobs driving the workshop lifecycle.

Each job opens its own session and works one workshop (or payment session,
or refund) per transaction, so a failure on one entity is logged and the
rest still get processed. Every job is safe to re-run:

- top_up_invitations():        daily, invites the next batch after cool-off
- sweep_expired_sessions():    hourly, cancels abandoned checkouts
- finalize_attendance():       hourly, finishes ended workshops (no-shows)
- issue_onboarding_tokens():   daily, sends onboarding links
- send_follow_ups():           daily, post-workshop messages
- retry_failed_refunds():      hourly, re-submits failed refunds
"""

import logging
from datetime import datetime, timedelta, timezone

import redis

from app.core.config import settings
from app.core.notifications import get_notifier
from app.core.redis import get_redis_client
from app.crud.crud_workshop import workshop as crud_workshop
from app.db.session import SessionLocal
from app.services.payment.provider_factory import get_payment_provider
from app.services.payment.session_cache import PaymentSessionCache
from app.services.workshops.follow_up_service import FollowUpService
from app.services.workshops.invitation_service import InvitationService
from app.services.workshops.onboarding_service import OnboardingService
from app.services.workshops.refund_service import RefundService
from app.services.workshops.workshop_service import WorkshopService

logger = logging.getLogger(__name__)


def top_up_invitations() -> int:
    """
    Invite the next batch for every published workshop with free seats whose
    cool-off has elapsed. A per-workshop Redis lock lets overlapping runs skip
    a workshop another worker is already topping up; the row lock and the
    seat compare-and-swap still guard correctness if Redis is unavailable.
    """
    db = SessionLocal()
    redis_client = get_redis_client()
    now = datetime.now(timezone.utc)
    invited_total = 0

    try:
        workshop_ids = [w.id for w in crud_workshop.get_needing_top_up(db, now=now)]
        db.rollback()
        service = InvitationService(db, notifier=get_notifier())

        for workshop_id in workshop_ids:
            lock_key = f"workshops:top_up_lock:{workshop_id}"
            lock_held = False
            try:
                if not redis_client.set(
                    lock_key, "1", nx=True, ex=settings.TOP_UP_LOCK_SECONDS
                ):
                    logger.debug(f"Skipping workshop {workshop_id} - top-up already in progress")
                    continue
                lock_held = True
            except redis.RedisError as e:
                logger.warning(f"Redis unavailable for top-up lock ({e}), relying on row lock")

            try:
                invited = service.top_up_workshop(workshop_id, now=now)
                invited_total += len(invited)
            except Exception as e:
                db.rollback()
                logger.error(f"Top-up failed for workshop {workshop_id}: {e}", exc_info=True)
            finally:
                if lock_held:
                    try:
                        redis_client.delete(lock_key)
                    except redis.RedisError as e:
                        logger.warning(f"Could not release top-up lock {lock_key}: {e}")

        logger.info(f"Top-up run finished: {invited_total} invitation(s) sent")
        return invited_total

    finally:
        db.close()
        redis_client.close()


def sweep_expired_sessions() -> int:
    db = SessionLocal()
    try:
        cache = PaymentSessionCache(get_payment_provider())
        return cache.sweep_expired_sessions(db)
    except Exception as e:
        db.rollback()
        logger.error(f"Error sweeping expired payment sessions: {e}", exc_info=True)
        return 0
    finally:
        db.close()


def finalize_attendance() -> int:
    """Finish every published workshop whose end time has passed."""
    db = SessionLocal()
    now = datetime.now(timezone.utc)
    finished = 0
    try:
        workshop_ids = [w.id for w in crud_workshop.get_ended_unfinished(db, now=now)]
        db.rollback()
        service = WorkshopService(db, provider=get_payment_provider(), notifier=get_notifier())
        for workshop_id in workshop_ids:
            try:
                service.finish(workshop_id, now=now)
                finished += 1
            except Exception as e:
                db.rollback()
                logger.error(f"Could not finish workshop {workshop_id}: {e}", exc_info=True)
        if finished:
            logger.info(f"Finalized attendance for {finished} workshop(s)")
        return finished
    finally:
        db.close()


def issue_onboarding_tokens() -> int:
    db = SessionLocal()
    now = datetime.now(timezone.utc)
    issued = 0
    try:
        service = OnboardingService(db, notifier=get_notifier())
        horizon_workshops = crud_workshop.get_starting_between(
            db, start=now, end=now + timedelta(days=settings.ONBOARDING_LEAD_DAYS)
        )
        for workshop in horizon_workshops:
            try:
                issued += service.issue_tokens_for_workshop(workshop)
            except Exception as e:
                db.rollback()
                logger.error(
                    f"Could not issue onboarding tokens for workshop {workshop.id}: {e}",
                    exc_info=True,
                )
        return issued
    finally:
        db.close()


def send_follow_ups() -> int:
    db = SessionLocal()
    now = datetime.now(timezone.utc)
    sent = 0
    try:
        service = FollowUpService(db, notifier=get_notifier())
        for workshop in crud_workshop.get_finished_since(db, since=now - timedelta(days=settings.FOLLOW_UP_LOOKBACK_DAYS)):
            try:
                sent += service.send_for_workshop(workshop, now)
            except Exception as e:
                db.rollback()
                logger.error(f"Follow-ups failed for workshop {workshop.id}: {e}", exc_info=True)
        return sent
    finally:
        db.close()


def retry_failed_refunds() -> int:
    db = SessionLocal()
    try:
        service = RefundService(db, provider=get_payment_provider(), notifier=get_notifier())
        return service.retry_failed_refunds()
    except Exception as e:
        db.rollback()
        logger.error(f"Error retrying failed refunds: {e}", exc_info=True)
        return 0
    finally:
        db.close()
