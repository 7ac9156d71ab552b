from contextlib import contextmanager
from dataclasses import replace
from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from repairdesk.domain import Actor, PartLine, WorkOrder
from repairdesk.errors import ConflictError
from repairdesk.services.work_order_service import PartLineInput, WorkOrderInput, WorkOrderService


class FakeWorkOrderRepository:
    def __init__(self):
        self.rows = {}
        self.writes = 0

    def insert(self, conn, order):
        self.rows[order.id] = replace(order, part_lines=())
        self.writes += 1

    def update(self, conn, order):
        if order.id not in self.rows:
            raise ConflictError("gone")
        self.rows[order.id] = replace(order, part_lines=())
        self.writes += 1

    def claim(self, conn, order, *, owner_id):
        stored = self.rows.get(order.id)
        if stored is None or stored.owner_id is not None:
            raise ConflictError(f"Work order {order.id} is already claimed.")
        self.rows[order.id] = replace(order, owner_id=owner_id, part_lines=())
        self.writes += 1

    def get(self, conn, work_order_id):
        return self.rows.get(work_order_id)

    def list_by_filter(self, conn, predicate, *, visible_to=None, limit=500):
        orders = sorted(self.rows.values(), key=lambda o: o.created_at, reverse=True)
        if visible_to is not None:
            orders = [o for o in orders if o.owner_id in (None, visible_to)]
        return [o for o in orders if predicate(o)][:limit]


class FakePartLineRepository:
    def __init__(self):
        self.lines = {}
        self._next_id = 1

    def replace_for_order(self, conn, work_order_id, lines):
        saved = []
        for ln in lines:
            saved.append(replace(ln, id=self._next_id, work_order_id=work_order_id))
            self._next_id += 1
        self.lines[work_order_id] = saved
        return saved

    def list_for_order(self, conn, work_order_id):
        return list(self.lines.get(work_order_id, []))


class FakePartDirectoryRepository:
    def __init__(self):
        self.entries = {}

    def upsert(self, conn, entry):
        key = (entry.part_number, entry.appliance_brand or "", entry.appliance_model or "")
        self.entries[key] = entry
        return len(self.entries)

    def search(self, conn, term, limit=20):
        t = term.strip().lower()
        found = [e for e in self.entries.values() if t in e.part_name.lower() or t in e.part_number.lower()]
        return found[:limit]


class FakeApplianceModelRepository:
    def __init__(self):
        self.models = {}

    def upsert(self, conn, model):
        key = (model.brand, model.model, model.serial_number or "")
        self.models[key] = model
        return len(self.models)

    def list_for_brand(self, conn, brand):
        b = brand.strip().lower()
        return sorted((m for m in self.models.values() if m.brand.lower() == b), key=lambda m: m.model)


class FakeDb:
    def __init__(self):
        self.transactions = 0

    @contextmanager
    def session(self):
        yield object()

    @contextmanager
    def transaction(self):
        self.transactions += 1
        yield object()


class Clock:
    def __init__(self):
        self.now = datetime(2024, 3, 1, 9, 0, tzinfo=timezone.utc)

    def __call__(self):
        self.now += timedelta(minutes=1)
        return self.now


@pytest.fixture
def conn():
    return object()


@pytest.fixture
def actor():
    return Actor(user_id="tech-1", display_name="Dana Tech", email="dana@example.com")


@pytest.fixture
def other_actor():
    return Actor(user_id="tech-2", display_name="Sam", email="sam@example.com")


@pytest.fixture
def repos():
    return (
        FakeWorkOrderRepository(),
        FakePartLineRepository(),
        FakePartDirectoryRepository(),
        FakeApplianceModelRepository(),
    )


@pytest.fixture
def service(repos):
    wo_repo, line_repo, dir_repo, model_repo = repos
    return WorkOrderService(
        work_order_repo=wo_repo,
        part_line_repo=line_repo,
        part_directory_repo=dir_repo,
        appliance_model_repo=model_repo,
        clock=Clock(),
    )


@pytest.fixture
def fridge_input():
    return WorkOrderInput(
        customer_name="Pat Customer",
        appliance_brand="GE",
        appliance_type="Refrigerator",
        problem_description="not cooling",
        labor_level=3,
        diagnostic_fee_type="standard",
        parts=[PartLineInput(part_name="Start relay", part_number="WR07X10097", unit_cost="20.00", quantity=2, markup_percentage=75)],
    )


def part_line(cost="20.00", markup="75", final="35.00", qty=1, name="Relay", number="R-1"):
    return PartLine(
        part_name=name,
        part_number=number,
        unit_cost=Decimal(cost),
        markup_percentage=Decimal(markup),
        final_price=Decimal(final),
        quantity=qty,
    )


def work_order(**overrides):
    now = datetime(2024, 3, 1, 9, 0, tzinfo=timezone.utc)
    fields = dict(
        id="wo-1",
        work_order_number="WO-20240301-ABC123",
        owner_id="tech-1",
        customer_name="Pat Customer",
        customer_phone=None,
        customer_email=None,
        customer_address=None,
        customer_address_line_2=None,
        customer_city=None,
        customer_state=None,
        customer_zip_code=None,
        appliance_brand="GE",
        appliance_type="Refrigerator",
        appliance_model=None,
        serial_number=None,
        warranty_status=None,
        service_type=None,
        problem_description="not cooling",
        initial_diagnosis=None,
        parts_needed=None,
        estimated_time=None,
        technician_notes=None,
        cancellation_reason=None,
        labor_level=0,
        diagnostic_fee_type=None,
        diagnostic_fee_amount=Decimal("0.00"),
        labor_cost_calculated=Decimal("0.00"),
        parts_cost="0.00",
        total_cost=Decimal("0.00"),
        pricing_version="2024-01",
        status="Scheduled",
        job_completion="none",
        created_at=now,
        updated_at=now,
    )
    fields.update(overrides)
    return WorkOrder(**fields)
