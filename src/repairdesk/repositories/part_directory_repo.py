from __future__ import annotations

from decimal import Decimal

from psycopg import Connection

from ..domain import PartDirectoryEntry


def _row_to_entry(r: dict) -> PartDirectoryEntry:
    return PartDirectoryEntry(
        id=int(r["id"]),
        part_name=r["part_name"],
        part_number=r["part_number"],
        unit_cost=Decimal(r["unit_cost"]),
        markup_percentage=Decimal(r["markup_percentage"]),
        final_price=Decimal(r["final_price"]),
        appliance_brand=r["appliance_brand"] or None,
        appliance_model=r["appliance_model"] or None,
        appliance_type=r["appliance_type"],
    )


class PartDirectoryRepository:
    def upsert(self, conn: Connection, entry: PartDirectoryEntry) -> int:
        cur = conn.execute(
            """
            INSERT INTO part_directory(part_name, part_number, unit_cost, markup_percentage,
                                       final_price, appliance_brand, appliance_model, appliance_type)
            VALUES (%s, %s, %s, %s, %s, %s, %s, %s)
            ON CONFLICT (part_number, appliance_brand, appliance_model) DO UPDATE SET
              part_name = EXCLUDED.part_name,
              unit_cost = EXCLUDED.unit_cost,
              markup_percentage = EXCLUDED.markup_percentage,
              final_price = EXCLUDED.final_price,
              appliance_type = EXCLUDED.appliance_type,
              updated_at = now()
            RETURNING id;
            """,
            (
                entry.part_name,
                entry.part_number,
                entry.unit_cost,
                entry.markup_percentage,
                entry.final_price,
                entry.appliance_brand or "",
                entry.appliance_model or "",
                entry.appliance_type,
            ),
        )
        return int(cur.fetchone()[0])

    def search(self, conn: Connection, term: str, limit: int = 20) -> list[PartDirectoryEntry]:
        pattern = f"%{term.strip()}%"
        cur = conn.execute(
            """
            SELECT id, part_name, part_number, unit_cost, markup_percentage, final_price,
                   appliance_brand, appliance_model, appliance_type
            FROM part_directory
            WHERE part_name ILIKE %s OR part_number ILIKE %s
            ORDER BY part_name
            LIMIT %s;
            """,
            (pattern, pattern, limit),
        )
        cols = [d.name for d in cur.description]
        return [_row_to_entry(dict(zip(cols, row))) for row in cur.fetchall()]
