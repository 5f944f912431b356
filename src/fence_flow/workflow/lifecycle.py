"""Daily sweep that moves entities whose status depends on the calendar."""

import logging
from datetime import date, timedelta
from typing import Optional

from fence_flow.config import Config
from fence_flow.database.models import Actor

from .engine import WorkflowEngine
from .errors import ConcurrentModification, TransitionError

logger = logging.getLogger(__name__)

SYSTEM_ACTOR = Actor(name="system", roles=("system",))


def _try_transition(engine: WorkflowEngine, entity_type: str,
                    entity_id: int, to_status: str, actor: Actor,
                    note: str) -> bool:
    """Apply one sweep transition, retrying once on a concurrent edit.

    Returns True when the entity moved. A move that is no longer legal
    (someone acted on the entity first) is skipped.
    """
    for attempt in (1, 2):
        entity = engine.get(entity_type, entity_id)
        if entity.status == to_status:
            return False
        try:
            engine.apply_transition(
                entity_type, entity_id, to_status, actor, note=note,
                expected_version=entity.version,
            )
            return True
        except ConcurrentModification:
            if attempt == 2:
                logger.warning("Sweep gave up on %s %s -> %s after a "
                               "concurrent edit", entity_type, entity_id,
                               to_status)
                return False
        except TransitionError as exc:
            logger.info("Sweep skipped %s %s: %s",
                        entity_type, entity_id, exc)
            return False
    return False


def _refresh_assessments(engine, today: date, actor: Actor) -> int:
    moved = 0
    for request in engine.repo.get_requests_with_assessment_on_or_before(
            today.isoformat()):
        day = date.fromisoformat(request.assessment_scheduled_at[:10])
        if request.status == "assessment_scheduled":
            if _try_transition(engine, "request", request.id,
                               "assessment_today", actor,
                               f"Assessment day {day.isoformat()}"):
                moved += 1
        if day < today:
            current = engine.get("request", request.id)
            if current.status == "assessment_today" and _try_transition(
                    engine, "request", request.id, "assessment_overdue",
                    actor, f"Assessment missed on {day.isoformat()}"):
                moved += 1
    return moved


def _quote_needs_follow_up(quote, today: date, follow_up_days: int) -> bool:
    if quote.valid_until and date.fromisoformat(quote.valid_until[:10]) < today:
        return True
    if not quote.sent_at:
        return False
    sent = date.fromisoformat(quote.sent_at[:10])
    return sent + timedelta(days=follow_up_days) <= today


def _refresh_quotes(engine, today: date, actor: Actor,
                    follow_up_days: int) -> int:
    moved = 0
    for quote in engine.repo.get_all_quotes("sent"):
        if _quote_needs_follow_up(quote, today, follow_up_days):
            if _try_transition(engine, "quote", quote.id, "follow_up", actor,
                               "No client response"):
                moved += 1
    return moved


def _refresh_invoices(engine, today: date, actor: Actor) -> int:
    moved = 0
    for invoice in engine.repo.get_invoices_past_due(today.isoformat()):
        if _try_transition(engine, "invoice", invoice.id, "past_due", actor,
                           f"Due {invoice.due_date}"):
            moved += 1
    return moved


def refresh_time_based_statuses(engine: WorkflowEngine,
                                today: Optional[date] = None,
                                actor: Actor = SYSTEM_ACTOR,
                                follow_up_days: Optional[int] = None
                                ) -> dict:
    """Run the daily status sweep.

    - Requests: ``assessment_scheduled`` becomes ``assessment_today`` on the
      assessment day and ``assessment_overdue`` once the day has passed.
    - Quotes: ``sent`` becomes ``follow_up`` after the follow-up window or
      once ``valid_until`` has passed.
    - Invoices: ``sent`` becomes ``past_due`` after ``due_date``.

    Every move goes through the engine and lands in the ledger.

    Returns:
        Number of transitions per entity type.
    """
    if today is None:
        today = engine.now().date()
    if follow_up_days is None:
        follow_up_days = Config.QUOTE_FOLLOW_UP_DAYS

    summary = {
        "request": _refresh_assessments(engine, today, actor),
        "quote": _refresh_quotes(engine, today, actor, follow_up_days),
        "invoice": _refresh_invoices(engine, today, actor),
    }
    logger.info("Lifecycle sweep for %s: %s", today.isoformat(), summary)
    return summary
