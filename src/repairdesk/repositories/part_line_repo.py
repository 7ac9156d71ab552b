from __future__ import annotations

from decimal import Decimal

from psycopg import Connection

from ..domain import PartLine


class PartLineRepository:
    def replace_for_order(self, conn: Connection, work_order_id: str, lines: list[PartLine]) -> list[PartLine]:
        """Delete every persisted line of the order, then insert ``lines``."""
        conn.execute("DELETE FROM part_line WHERE work_order_id = %s;", (work_order_id,))
        if not lines:
            return []

        saved: list[PartLine] = []
        with conn.cursor() as cur:
            for ln in lines:
                cur.execute(
                    """
                    INSERT INTO part_line(work_order_id, part_name, part_number, unit_cost,
                                          markup_percentage, final_price, quantity)
                    VALUES (%s, %s, %s, %s, %s, %s, %s)
                    RETURNING id;
                    """,
                    (
                        work_order_id,
                        ln.part_name,
                        ln.part_number,
                        ln.unit_cost,
                        ln.markup_percentage,
                        ln.final_price,
                        ln.quantity,
                    ),
                )
                line_id = int(cur.fetchone()[0])
                saved.append(
                    PartLine(
                        part_name=ln.part_name,
                        part_number=ln.part_number,
                        unit_cost=ln.unit_cost,
                        markup_percentage=ln.markup_percentage,
                        final_price=ln.final_price,
                        quantity=ln.quantity,
                        id=line_id,
                        work_order_id=work_order_id,
                    )
                )
        return saved

    def list_for_order(self, conn: Connection, work_order_id: str) -> list[PartLine]:
        cur = conn.execute(
            """
            SELECT id, work_order_id, part_name, part_number, unit_cost,
                   markup_percentage, final_price, quantity
            FROM part_line
            WHERE work_order_id = %s
            ORDER BY id;
            """,
            (work_order_id,),
        )
        cols = [d.name for d in cur.description]
        lines = []
        for row in cur.fetchall():
            r = dict(zip(cols, row))
            lines.append(
                PartLine(
                    part_name=r["part_name"],
                    part_number=r["part_number"],
                    unit_cost=Decimal(r["unit_cost"]),
                    markup_percentage=Decimal(r["markup_percentage"]),
                    final_price=Decimal(r["final_price"]),
                    quantity=int(r["quantity"]),
                    id=int(r["id"]),
                    work_order_id=r["work_order_id"],
                )
            )
        return lines
