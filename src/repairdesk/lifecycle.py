"""Work-order status state machine.

``status`` is the dispatch status, ``job_completion`` tracks whether a part
return visit is scheduled (``spt``) or the job is done (``complete``).
Setting ``job_completion`` to ``complete`` is the only transition that
promotes ``status`` on its own.
"""

from __future__ import annotations

import logging
from dataclasses import replace
from datetime import datetime, timezone
from typing import Optional

from .domain import Actor, EffectiveState, WorkOrder
from .errors import ValidationError

logger = logging.getLogger(__name__)

TERMINAL_STATUSES = frozenset({"Completed", "Cancelled"})
OPEN_STATUSES = frozenset({"Scheduled", "Travel", "Active", "Appointment"})

_STATUS_ALIASES = {
    "scheduled": "Scheduled",
    "travel": "Travel",
    "active": "Active",
    "in progress": "Active",
    "in_progress": "Active",
    "appointment": "Appointment",
    "completed": "Completed",
    "complete": "Completed",
    "cancelled": "Cancelled",
    "canceled": "Cancelled",
    "cancel": "Cancelled",
}

_JOB_COMPLETION_ALIASES = {
    "none": "none",
    "": "none",
    "spt": "spt",
    "spr": "spt",
    "complete": "complete",
    "completed": "complete",
}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def normalize_status(value: str) -> str:
    key = (value or "").strip().lower()
    try:
        return _STATUS_ALIASES[key]
    except KeyError:
        raise ValidationError(f"Unknown work order status: {value!r}") from None


def normalize_job_completion(value: Optional[str]) -> str:
    key = (value or "").strip().lower()
    try:
        return _JOB_COMPLETION_ALIASES[key]
    except KeyError:
        raise ValidationError(f"Unknown job completion state: {value!r}") from None


def display_status(status: str) -> str:
    return "In Progress" if status == "Active" else status


def effective_state(order: WorkOrder) -> EffectiveState:
    """Single state every operational view filters on."""
    if order.status == "Cancelled":
        return "cancelled"
    if order.status == "Completed" or order.job_completion == "complete":
        return "completed"
    if order.job_completion == "spt":
        return "parts_pending"
    return "active"


def check_invariants(order: WorkOrder) -> None:
    if order.status == "Cancelled" and not (order.cancellation_reason or "").strip():
        raise ValidationError("A cancelled work order must have a cancellation reason.")
    if order.status != "Cancelled" and order.cancellation_reason is not None:
        raise ValidationError("Cancellation reason is only allowed on cancelled work orders.")
    if order.job_completion == "complete" and order.status != "Completed":
        raise ValidationError("A work order with a completed job must have status Completed.")


def lint_warnings(order: WorkOrder) -> list[str]:
    warnings: list[str] = []
    if order.status == "Completed" and order.job_completion != "complete":
        warnings.append("Status set to Completed without completing the job (job completion bypassed).")
    return warnings


def change_status(
    order: WorkOrder,
    status: str,
    *,
    actor: Actor,
    reason: Optional[str] = None,
    now: Optional[datetime] = None,
) -> WorkOrder:
    new_status = normalize_status(status)
    now = now or _utcnow()

    if new_status == order.status:
        return order

    if order.status in TERMINAL_STATUSES:
        raise ValidationError(f"Work order is {order.status}; its status can no longer change.")

    if new_status == "Cancelled":
        reason = (reason or "").strip()
        if not reason:
            raise ValidationError("A cancellation reason is required to cancel a work order.")
        updated = replace(
            order,
            status="Cancelled",
            cancellation_reason=reason,
            updated_at=now,
            updated_by=actor.user_id,
        )
    elif new_status == "Completed":
        updated = replace(
            order,
            status="Completed",
            completed_at=now,
            updated_at=now,
            updated_by=actor.user_id,
        )
        for w in lint_warnings(updated):
            logger.warning("work order %s: %s (actor=%s)", order.id, w, actor.user_id)
    else:
        updated = replace(order, status=new_status, updated_at=now, updated_by=actor.user_id)

    check_invariants(updated)
    logger.info("work order %s: status %s -> %s (actor=%s)", order.id, order.status, new_status, actor.user_id)
    return updated


def set_job_completion(
    order: WorkOrder,
    job_completion: str,
    *,
    actor: Actor,
    now: Optional[datetime] = None,
) -> WorkOrder:
    sub = normalize_job_completion(job_completion)
    now = now or _utcnow()

    if order.status == "Cancelled":
        raise ValidationError("Work order is Cancelled; job completion can no longer change.")
    if order.status == "Completed" and sub != "complete":
        raise ValidationError("Work order is Completed; it cannot be reopened.")

    if sub == "complete":
        updated = replace(
            order,
            job_completion="complete",
            status="Completed",
            completed_at=order.completed_at or now,
            updated_at=now,
            updated_by=actor.user_id,
        )
    else:
        updated = replace(order, job_completion=sub, updated_at=now, updated_by=actor.user_id)

    check_invariants(updated)
    logger.info(
        "work order %s: job completion %s -> %s, status=%s (actor=%s)",
        order.id,
        order.job_completion,
        sub,
        updated.status,
        actor.user_id,
    )
    return updated


def reschedule(order: WorkOrder, *, actor: Actor, now: Optional[datetime] = None) -> WorkOrder:
    """Put an open work order back to Scheduled and clear any pending part return."""
    if order.status in TERMINAL_STATUSES:
        raise ValidationError(f"Work order is {order.status}; it cannot be rescheduled.")
    now = now or _utcnow()
    updated = replace(order, status="Scheduled", job_completion="none", updated_at=now, updated_by=actor.user_id)
    check_invariants(updated)
    logger.info("work order %s: rescheduled (actor=%s)", order.id, actor.user_id)
    return updated
