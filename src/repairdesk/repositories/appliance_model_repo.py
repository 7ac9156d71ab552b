from __future__ import annotations

from psycopg import Connection

from ..domain import ApplianceModel


class ApplianceModelRepository:
    def upsert(self, conn: Connection, model: ApplianceModel) -> int:
        cur = conn.execute(
            """
            INSERT INTO appliance_model(brand, model, appliance_type, serial_number)
            VALUES (%s, %s, %s, %s)
            ON CONFLICT (brand, model, serial_number) DO UPDATE SET
              appliance_type = EXCLUDED.appliance_type,
              updated_at = now()
            RETURNING id;
            """,
            (model.brand, model.model, model.appliance_type, model.serial_number or ""),
        )
        return int(cur.fetchone()[0])

    def list_for_brand(self, conn: Connection, brand: str) -> list[ApplianceModel]:
        cur = conn.execute(
            """
            SELECT id, brand, model, appliance_type, serial_number
            FROM appliance_model
            WHERE brand ILIKE %s
            ORDER BY model;
            """,
            (brand.strip(),),
        )
        return [
            ApplianceModel(
                id=int(r[0]),
                brand=r[1],
                model=r[2],
                appliance_type=r[3],
                serial_number=r[4] or None,
            )
            for r in cur.fetchall()
        ]
