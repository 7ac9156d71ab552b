from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Callable, Optional
from uuid import uuid4

from psycopg import Connection

from .. import lifecycle
from ..domain import VIEWS, Actor, ApplianceModel, PartDirectoryEntry, PartLine, WorkOrder
from ..errors import ConflictError, NotFoundError, ValidationError
from ..pricing import (
    DEFAULT_PRICING,
    CostBreakdown,
    PricingTable,
    cost_breakdown,
    diagnostic_fee,
    make_part_line,
    normalize_diagnostic_fee_type,
    to_money,
    validate_labor_level,
)
from ..repositories.appliance_model_repo import ApplianceModelRepository
from ..repositories.part_directory_repo import PartDirectoryRepository
from ..repositories.part_line_repo import PartLineRepository
from ..repositories.work_order_repo import WorkOrderRepository

logger = logging.getLogger(__name__)

REQUIRED_FIELDS = ("appliance_brand", "appliance_type", "problem_description")

_OPTIONAL_TEXT_FIELDS = (
    "customer_phone",
    "customer_email",
    "customer_address",
    "customer_address_line_2",
    "customer_city",
    "customer_state",
    "customer_zip_code",
    "appliance_model",
    "serial_number",
    "warranty_status",
    "service_type",
    "initial_diagnosis",
    "parts_needed",
    "estimated_time",
    "technician_notes",
)


@dataclass
class PartLineInput:
    part_name: str
    part_number: str
    unit_cost: object
    quantity: int = 1
    markup_percentage: object = None


@dataclass
class WorkOrderInput:
    appliance_brand: str = ""
    appliance_type: str = ""
    problem_description: str = ""
    customer_name: Optional[str] = None
    customer_phone: Optional[str] = None
    customer_email: Optional[str] = None
    customer_address: Optional[str] = None
    customer_address_line_2: Optional[str] = None
    customer_city: Optional[str] = None
    customer_state: Optional[str] = None
    customer_zip_code: Optional[str] = None
    appliance_model: Optional[str] = None
    serial_number: Optional[str] = None
    warranty_status: Optional[str] = None
    service_type: Optional[str] = None
    initial_diagnosis: Optional[str] = None
    parts_needed: Optional[str] = None
    estimated_time: Optional[str] = None
    technician_notes: Optional[str] = None
    labor_level: int = 0
    diagnostic_fee_type: Optional[str] = None
    parts: list[PartLineInput] = field(default_factory=list)


def _clean(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    value = str(value).strip()
    return value or None


def default_customer_name(explicit: Optional[str], actor: Actor) -> str:
    """Input, then the actor's display name, then the local part of their email."""
    for candidate in (explicit, actor.display_name):
        if _clean(candidate):
            return _clean(candidate)
    email = _clean(actor.email)
    if email and "@" in email and email.split("@", 1)[0]:
        return email.split("@", 1)[0]
    return "Customer"


class WorkOrderService:
    def __init__(
        self,
        *,
        work_order_repo: WorkOrderRepository,
        part_line_repo: PartLineRepository,
        part_directory_repo: PartDirectoryRepository,
        appliance_model_repo: ApplianceModelRepository,
        pricing: PricingTable = DEFAULT_PRICING,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self.work_order_repo = work_order_repo
        self.part_line_repo = part_line_repo
        self.part_directory_repo = part_directory_repo
        self.appliance_model_repo = appliance_model_repo
        self.pricing = pricing
        self.clock = clock or (lambda: datetime.now(timezone.utc))

    # ---- validation / pricing -------------------------------------------------

    def _validate(self, data: WorkOrderInput) -> tuple[int, Optional[str], list[PartLine]]:
        missing = [name for name in REQUIRED_FIELDS if not _clean(getattr(data, name))]
        if missing:
            raise ValidationError(f"Missing required field(s): {', '.join(missing)}")

        labor_level = validate_labor_level(data.labor_level, self.pricing)
        fee_type = normalize_diagnostic_fee_type(data.diagnostic_fee_type, self.pricing)
        lines = [
            make_part_line(
                part_name=p.part_name,
                part_number=p.part_number,
                unit_cost=p.unit_cost,
                quantity=p.quantity,
                markup_percentage=p.markup_percentage,
                pricing=self.pricing,
            )
            for p in data.parts
        ]
        return labor_level, fee_type, lines

    def _fields_from_input(
        self,
        data: WorkOrderInput,
        *,
        actor: Actor,
        labor_level: int,
        fee_type: Optional[str],
        lines: list[PartLine],
        previous: Optional[WorkOrder] = None,
    ) -> dict:
        if previous is not None and fee_type == previous.diagnostic_fee_type:
            # keep the fee that was snapshotted when the category was chosen
            fee_amount = previous.diagnostic_fee_amount
        else:
            fee_amount = diagnostic_fee(fee_type, self.pricing)

        costs = cost_breakdown(labor_level, fee_amount, lines, self.pricing)

        if previous is not None and not _clean(data.customer_name):
            customer_name = previous.customer_name
        else:
            customer_name = default_customer_name(data.customer_name, actor)

        fields = {name: _clean(getattr(data, name)) for name in _OPTIONAL_TEXT_FIELDS}
        fields.update(
            customer_name=customer_name,
            appliance_brand=_clean(data.appliance_brand),
            appliance_type=_clean(data.appliance_type),
            problem_description=_clean(data.problem_description),
            labor_level=labor_level,
            diagnostic_fee_type=fee_type,
            diagnostic_fee_amount=costs.diagnostic_fee,
            labor_cost_calculated=costs.labor_cost,
            parts_cost=str(costs.parts_cost),
            total_cost=costs.total_cost,
            pricing_version=self.pricing.version,
            part_lines=tuple(lines),
        )
        return fields

    # ---- reads -----------------------------------------------------------------

    def _load(self, conn: Connection, work_order_id: str) -> WorkOrder:
        order = self.work_order_repo.get(conn, work_order_id)
        if order is None:
            raise NotFoundError(f"Work order not found: {work_order_id}")
        lines = self.part_line_repo.list_for_order(conn, work_order_id)
        return replace(order, part_lines=tuple(lines))

    def _load_visible(self, conn: Connection, actor: Actor, work_order_id: str) -> WorkOrder:
        order = self._load(conn, work_order_id)
        if order.owner_id is not None and order.owner_id != actor.user_id:
            raise NotFoundError(f"Work order not found: {work_order_id}")
        return order

    def _load_owned(self, conn: Connection, actor: Actor, work_order_id: str) -> WorkOrder:
        order = self._load_visible(conn, actor, work_order_id)
        if order.owner_id is None:
            raise ConflictError(f"Work order {work_order_id} is unclaimed; claim it before editing.")
        return order

    def get_work_order(self, conn: Connection, *, actor: Actor, work_order_id: str) -> WorkOrder:
        return self._load_visible(conn, actor, work_order_id)

    def list_view(self, conn: Connection, *, actor: Actor, view: str, limit: int = 500) -> list[WorkOrder]:
        if view not in VIEWS:
            raise ValidationError(f"Unknown view: {view!r} (expected one of: {', '.join(VIEWS)})")
        return self.work_order_repo.list_by_filter(
            conn,
            lambda o: lifecycle.effective_state(o) == view,
            visible_to=actor.user_id,
            limit=limit,
        )

    def search_parts(self, conn: Connection, *, term: str, limit: int = 20) -> list[PartDirectoryEntry]:
        if not (term or "").strip():
            raise ValidationError("Enter a part name or number to search.")
        return self.part_directory_repo.search(conn, term, limit=limit)

    def appliance_models(self, conn: Connection, *, brand: str) -> list[ApplianceModel]:
        if not (brand or "").strip():
            raise ValidationError("Enter an appliance brand.")
        return self.appliance_model_repo.list_for_brand(conn, brand)

    def cost_breakdown(self, order: WorkOrder) -> CostBreakdown:
        """Costs as snapshotted on the record; nothing is re-derived from the pricing table."""
        return CostBreakdown(
            labor_cost=to_money(order.labor_cost_calculated),
            diagnostic_fee=to_money(order.diagnostic_fee_amount),
            parts_cost=to_money(order.parts_cost),
            total_cost=to_money(order.total_cost),
        )

    # ---- writes ----------------------------------------------------------------

    def _save_part_lines(self, conn: Connection, order: WorkOrder) -> WorkOrder:
        saved = self.part_line_repo.replace_for_order(conn, order.id, list(order.part_lines))
        return replace(order, part_lines=tuple(saved))

    def create_work_order(
        self,
        conn: Connection,
        *,
        actor: Actor,
        data: WorkOrderInput,
        public: bool = False,
    ) -> WorkOrder:
        labor_level, fee_type, lines = self._validate(data)
        now = self.clock()
        order_id = str(uuid4())

        order = WorkOrder(
            id=order_id,
            work_order_number=f"WO-{now:%Y%m%d}-{order_id.replace('-', '')[:6].upper()}",
            owner_id=None if public else actor.user_id,
            cancellation_reason=None,
            status="Scheduled",
            job_completion="none",
            created_at=now,
            updated_at=now,
            completed_at=None,
            updated_by=actor.user_id,
            **self._fields_from_input(
                data, actor=actor, labor_level=labor_level, fee_type=fee_type, lines=lines
            ),
        )
        lifecycle.check_invariants(order)

        self.work_order_repo.insert(conn, order)
        order = self._save_part_lines(conn, order)

        for ln in order.part_lines:
            self.part_directory_repo.upsert(
                conn,
                PartDirectoryEntry(
                    part_name=ln.part_name,
                    part_number=ln.part_number,
                    unit_cost=ln.unit_cost,
                    markup_percentage=ln.markup_percentage,
                    final_price=ln.final_price,
                    appliance_brand=order.appliance_brand,
                    appliance_model=order.appliance_model,
                    appliance_type=order.appliance_type,
                ),
            )

        # catalog only fully identified models
        if order.appliance_model:
            self.appliance_model_repo.upsert(
                conn,
                ApplianceModel(
                    brand=order.appliance_brand,
                    model=order.appliance_model,
                    appliance_type=order.appliance_type,
                    serial_number=order.serial_number,
                ),
            )

        logger.info(
            "created work order %s (%s) owner=%s total=%s",
            order.id,
            order.work_order_number,
            order.owner_id or "<public>",
            order.total_cost,
        )
        return order

    def update_work_order(
        self,
        conn: Connection,
        *,
        actor: Actor,
        work_order_id: str,
        data: WorkOrderInput,
    ) -> WorkOrder:
        labor_level, fee_type, lines = self._validate(data)
        current = self._load_owned(conn, actor, work_order_id)

        order = replace(
            current,
            updated_at=self.clock(),
            updated_by=actor.user_id,
            **self._fields_from_input(
                data,
                actor=actor,
                labor_level=labor_level,
                fee_type=fee_type,
                lines=lines,
                previous=current,
            ),
        )
        lifecycle.check_invariants(order)

        self.work_order_repo.update(conn, order)
        order = self._save_part_lines(conn, order)
        logger.info("updated work order %s total=%s (actor=%s)", order.id, order.total_cost, actor.user_id)
        return order

    def claim_work_order(
        self,
        conn: Connection,
        *,
        actor: Actor,
        work_order_id: str,
        data: Optional[WorkOrderInput] = None,
    ) -> WorkOrder:
        if data is not None:
            labor_level, fee_type, lines = self._validate(data)

        current = self._load(conn, work_order_id)
        if current.owner_id is not None:
            raise ConflictError(f"Work order {work_order_id} is already claimed.")

        if data is not None:
            edits = self._fields_from_input(
                data,
                actor=actor,
                labor_level=labor_level,
                fee_type=fee_type,
                lines=lines,
                previous=current,
            )
        else:
            edits = {}

        order = replace(
            current,
            owner_id=actor.user_id,
            updated_at=self.clock(),
            updated_by=actor.user_id,
            **edits,
        )
        lifecycle.check_invariants(order)

        self.work_order_repo.claim(conn, order, owner_id=actor.user_id)
        if data is not None:
            order = self._save_part_lines(conn, order)
        logger.info("work order %s claimed by %s", order.id, actor.user_id)
        return order

    def _persist_state(self, conn: Connection, order: WorkOrder) -> WorkOrder:
        self.work_order_repo.update(conn, order)
        return order

    def change_status(
        self,
        conn: Connection,
        *,
        actor: Actor,
        work_order_id: str,
        status: str,
        reason: Optional[str] = None,
    ) -> WorkOrder:
        current = self._load_owned(conn, actor, work_order_id)
        order = lifecycle.change_status(current, status, actor=actor, reason=reason, now=self.clock())
        if order is current:
            return current
        return self._persist_state(conn, order)

    def set_job_completion(
        self,
        conn: Connection,
        *,
        actor: Actor,
        work_order_id: str,
        job_completion: str,
    ) -> WorkOrder:
        current = self._load_owned(conn, actor, work_order_id)
        order = lifecycle.set_job_completion(current, job_completion, actor=actor, now=self.clock())
        return self._persist_state(conn, order)

    def reschedule(self, conn: Connection, *, actor: Actor, work_order_id: str) -> WorkOrder:
        current = self._load_owned(conn, actor, work_order_id)
        order = lifecycle.reschedule(current, actor=actor, now=self.clock())
        return self._persist_state(conn, order)
