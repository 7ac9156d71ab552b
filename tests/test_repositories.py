from dataclasses import asdict
from decimal import Decimal
from types import SimpleNamespace
from unittest.mock import MagicMock

import pytest

from conftest import part_line, work_order
from repairdesk.domain import ApplianceModel, PartDirectoryEntry
from repairdesk.errors import ConflictError
from repairdesk.repositories.appliance_model_repo import ApplianceModelRepository
from repairdesk.repositories.part_directory_repo import PartDirectoryRepository
from repairdesk.repositories.part_line_repo import PartLineRepository
from repairdesk.repositories.work_order_repo import WorkOrderRepository


def _cursor(rows, columns, rowcount=None):
    cur = MagicMock()
    cur.description = [SimpleNamespace(name=c) for c in columns]
    cur.fetchone.return_value = rows[0] if rows else None
    cur.fetchall.return_value = rows
    cur.rowcount = len(rows) if rowcount is None else rowcount
    return cur


def _row_of(order):
    d = asdict(order)
    d.pop("part_lines")
    d["parts_cost"] = "12.50"
    return list(d.keys()), tuple(d.values())


def test_get_maps_row_to_work_order():
    cols, row = _row_of(work_order(total_cost=Decimal("12.50")))
    conn = MagicMock()
    conn.execute.return_value = _cursor([row], cols)

    order = WorkOrderRepository().get(conn, "wo-1")

    assert order.id == "wo-1"
    assert order.parts_cost == "12.50"
    assert order.total_cost == Decimal("12.50")
    assert order.part_lines == ()
    sql, params = conn.execute.call_args.args
    assert "FROM work_order WHERE id = %s" in sql
    assert params == ("wo-1",)


def test_get_missing_returns_none():
    conn = MagicMock()
    conn.execute.return_value = _cursor([], ["id"])
    assert WorkOrderRepository().get(conn, "nope") is None


def test_claim_is_conditional_on_no_owner():
    conn = MagicMock()
    conn.execute.return_value = _cursor([], [], rowcount=1)
    order = work_order(owner_id=None)

    WorkOrderRepository().claim(conn, order, owner_id="tech-9")

    sql, params = conn.execute.call_args.args
    assert "owner_id IS NULL" in sql
    assert params[-2:] == ("tech-9", "wo-1")


def test_claim_conflict_when_no_row_updated():
    conn = MagicMock()
    conn.execute.return_value = _cursor([], [], rowcount=0)
    with pytest.raises(ConflictError):
        WorkOrderRepository().claim(conn, work_order(owner_id=None), owner_id="tech-9")


def test_update_writes_every_mutable_column():
    conn = MagicMock()
    conn.execute.return_value = _cursor([], [], rowcount=1)
    WorkOrderRepository().update(conn, work_order(status="Travel"))

    sql, params = conn.execute.call_args.args
    assert sql.startswith("UPDATE work_order SET")
    assert "owner_id" not in sql
    assert "created_at" not in sql
    assert "Travel" in params
    assert params[-1] == "wo-1"


def test_list_by_filter_applies_predicate_and_visibility():
    a = work_order(id="a", status="Active")
    b = work_order(id="b", status="Completed")
    cols, row_a = _row_of(a)
    _, row_b = _row_of(b)
    conn = MagicMock()
    conn.execute.return_value = _cursor([row_a, row_b], cols)

    found = WorkOrderRepository().list_by_filter(conn, lambda o: o.status == "Completed", visible_to="tech-1")

    assert [o.id for o in found] == ["b"]
    sql, params = conn.execute.call_args.args
    assert "owner_id = %s OR owner_id IS NULL" in sql
    assert params == ("tech-1",)


def test_replace_part_lines_deletes_then_inserts():
    conn = MagicMock()
    cur = conn.cursor.return_value.__enter__.return_value
    cur.fetchone.side_effect = [(11,), (12,)]
    lines = [part_line(number="A"), part_line(number="B", qty=3)]

    saved = PartLineRepository().replace_for_order(conn, "wo-1", lines)

    delete_sql, delete_params = conn.execute.call_args.args
    assert delete_sql.startswith("DELETE FROM part_line")
    assert delete_params == ("wo-1",)
    assert cur.execute.call_count == 2
    assert [ln.id for ln in saved] == [11, 12]
    assert all(ln.work_order_id == "wo-1" for ln in saved)


def test_replace_part_lines_with_empty_list_only_deletes():
    conn = MagicMock()
    assert PartLineRepository().replace_for_order(conn, "wo-1", []) == []
    conn.cursor.assert_not_called()


def test_list_part_lines_keeps_stored_final_price():
    cols = ["id", "work_order_id", "part_name", "part_number", "unit_cost", "markup_percentage", "final_price", "quantity"]
    row = (5, "wo-1", "Relay", "R-1", Decimal("49.99"), Decimal("10"), Decimal("54.99"), 2)
    conn = MagicMock()
    conn.execute.return_value = _cursor([row], cols)

    [ln] = PartLineRepository().list_for_order(conn, "wo-1")
    assert ln.final_price == Decimal("54.99")
    assert ln.quantity == 2


def test_part_directory_upsert_uses_blank_for_missing_model():
    conn = MagicMock()
    conn.execute.return_value = _cursor([(3,)], ["id"])
    entry = PartDirectoryEntry(
        part_name="Relay",
        part_number="R-1",
        unit_cost=Decimal("20.00"),
        markup_percentage=Decimal("75"),
        final_price=Decimal("35.00"),
        appliance_brand="GE",
    )

    assert PartDirectoryRepository().upsert(conn, entry) == 3
    sql, params = conn.execute.call_args.args
    assert "ON CONFLICT (part_number, appliance_brand, appliance_model)" in sql
    assert params[5:7] == ("GE", "")


def test_part_directory_search():
    cols = ["id", "part_name", "part_number", "unit_cost", "markup_percentage", "final_price",
            "appliance_brand", "appliance_model", "appliance_type"]
    row = (1, "Relay", "R-1", Decimal("20"), Decimal("75"), Decimal("35"), "GE", "", "Refrigerator")
    conn = MagicMock()
    conn.execute.return_value = _cursor([row], cols)

    [entry] = PartDirectoryRepository().search(conn, " rel ")

    assert entry.appliance_model is None
    _, params = conn.execute.call_args.args
    assert params == ("%rel%", "%rel%", 20)


def test_appliance_model_upsert_keys_on_brand_model_serial():
    conn = MagicMock()
    conn.execute.return_value = _cursor([(7,)], ["id"])
    model = ApplianceModel(brand="GE", model="GTS18GTHWW", appliance_type="Refrigerator")

    assert ApplianceModelRepository().upsert(conn, model) == 7
    sql, params = conn.execute.call_args.args
    assert "ON CONFLICT (brand, model, serial_number)" in sql
    assert params == ("GE", "GTS18GTHWW", "Refrigerator", "")


def test_appliance_models_for_brand():
    conn = MagicMock()
    conn.execute.return_value = _cursor([(1, "GE", "GTS18GTHWW", "Refrigerator", "")], ["id"])

    [model] = ApplianceModelRepository().list_for_brand(conn, " GE ")

    assert model.serial_number is None
    assert conn.execute.call_args.args[1] == ("GE",)
