from __future__ import annotations

from decimal import Decimal
from typing import Callable

from psycopg import Connection

from ..domain import WorkOrder
from ..errors import ConflictError

# every column except id, owner_id and created_at, which are only written on insert/claim
_MUTABLE_COLUMNS = (
    "work_order_number",
    "customer_name",
    "customer_phone",
    "customer_email",
    "customer_address",
    "customer_address_line_2",
    "customer_city",
    "customer_state",
    "customer_zip_code",
    "appliance_brand",
    "appliance_type",
    "appliance_model",
    "serial_number",
    "warranty_status",
    "service_type",
    "problem_description",
    "initial_diagnosis",
    "parts_needed",
    "estimated_time",
    "technician_notes",
    "cancellation_reason",
    "labor_level",
    "diagnostic_fee_type",
    "diagnostic_fee_amount",
    "labor_cost_calculated",
    "parts_cost",
    "total_cost",
    "pricing_version",
    "status",
    "job_completion",
    "updated_at",
    "completed_at",
    "updated_by",
)

_ALL_COLUMNS = ("id", "owner_id", "created_at") + _MUTABLE_COLUMNS
_SELECT = "SELECT " + ", ".join(_ALL_COLUMNS) + " FROM work_order"
_SET_CLAUSE = ", ".join(f"{c} = %s" for c in _MUTABLE_COLUMNS)


def _values(order: WorkOrder, columns: tuple[str, ...]) -> tuple:
    return tuple(getattr(order, c) for c in columns)


def row_to_work_order(row: dict) -> WorkOrder:
    data = {c: row[c] for c in _ALL_COLUMNS}
    for c in ("diagnostic_fee_amount", "labor_cost_calculated", "total_cost"):
        data[c] = Decimal(data[c]) if data[c] is not None else Decimal("0.00")
    data["parts_cost"] = str(data["parts_cost"] or "0.00")
    data["job_completion"] = data["job_completion"] or "none"
    return WorkOrder(**data)


class WorkOrderRepository:
    def insert(self, conn: Connection, order: WorkOrder) -> None:
        conn.execute(
            f"""
            INSERT INTO work_order({", ".join(_ALL_COLUMNS)})
            VALUES ({", ".join(["%s"] * len(_ALL_COLUMNS))});
            """,
            _values(order, _ALL_COLUMNS),
        )

    def update(self, conn: Connection, order: WorkOrder) -> None:
        cur = conn.execute(
            f"UPDATE work_order SET {_SET_CLAUSE} WHERE id = %s;",
            _values(order, _MUTABLE_COLUMNS) + (order.id,),
        )
        if cur.rowcount != 1:
            raise ConflictError(f"Work order {order.id} was not updated (it no longer exists).")

    def claim(self, conn: Connection, order: WorkOrder, *, owner_id: str) -> None:
        # conditional on the row still being unowned; a concurrent claim loses here
        cur = conn.execute(
            f"""
            UPDATE work_order
            SET {_SET_CLAUSE}, owner_id = %s
            WHERE id = %s AND owner_id IS NULL;
            """,
            _values(order, _MUTABLE_COLUMNS) + (owner_id, order.id),
        )
        if cur.rowcount != 1:
            raise ConflictError(f"Work order {order.id} is already claimed.")

    def get(self, conn: Connection, work_order_id: str) -> WorkOrder | None:
        cur = conn.execute(f"{_SELECT} WHERE id = %s;", (work_order_id,))
        row = cur.fetchone()
        if not row:
            return None
        cols = [d.name for d in cur.description]
        return row_to_work_order(dict(zip(cols, row)))

    def list_by_filter(
        self,
        conn: Connection,
        predicate: Callable[[WorkOrder], bool],
        *,
        visible_to: str | None = None,
        limit: int = 500,
    ) -> list[WorkOrder]:
        """Newest first. ``visible_to`` restricts to that owner's orders plus public ones."""
        if visible_to is None:
            cur = conn.execute(f"{_SELECT} ORDER BY created_at DESC;")
        else:
            cur = conn.execute(
                f"{_SELECT} WHERE owner_id = %s OR owner_id IS NULL ORDER BY created_at DESC;",
                (visible_to,),
            )
        cols = [d.name for d in cur.description]
        result: list[WorkOrder] = []
        for row in cur.fetchall():
            order = row_to_work_order(dict(zip(cols, row)))
            if predicate(order):
                result.append(order)
                if len(result) >= limit:
                    break
        return result
