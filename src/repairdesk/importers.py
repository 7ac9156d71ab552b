from __future__ import annotations

import json
import logging
from pathlib import Path

from psycopg import Connection

from .domain import PartDirectoryEntry
from .errors import ValidationError
from .pricing import DEFAULT_PRICING, PricingTable, make_part_line
from .repositories.part_directory_repo import PartDirectoryRepository

logger = logging.getLogger(__name__)


class ImportFileError(Exception):
    pass


def import_parts_directory_json(
    conn: Connection,
    path: str | Path,
    part_directory_repo: PartDirectoryRepository,
    pricing: PricingTable = DEFAULT_PRICING,
) -> int:
    """Load a JSON list of parts into the parts directory; returns the number upserted.

    Each object needs ``part_number`` or ``part_name`` and ``unit_cost``;
    ``markup_percentage`` defaults to the pricing table's markup. Invalid
    entries are skipped and logged.
    """
    p = Path(path)
    if not p.exists():
        raise ImportFileError(f"File not found: {p}")

    try:
        data = json.loads(p.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as e:
        raise ImportFileError(f"Invalid JSON: {e}") from e

    if not isinstance(data, list):
        raise ImportFileError("JSON must be a list of objects")

    count = 0
    for i, obj in enumerate(data):
        if not isinstance(obj, dict):
            continue
        try:
            line = make_part_line(
                part_name=str(obj.get("part_name", "")),
                part_number=str(obj.get("part_number", "")),
                unit_cost=obj.get("unit_cost", 0),
                quantity=1,
                markup_percentage=obj.get("markup_percentage"),
                pricing=pricing,
            )
        except ValidationError as e:
            logger.warning("skipping part #%d in %s: %s", i, p.name, e)
            continue

        part_directory_repo.upsert(
            conn,
            PartDirectoryEntry(
                part_name=line.part_name,
                part_number=line.part_number,
                unit_cost=line.unit_cost,
                markup_percentage=line.markup_percentage,
                final_price=line.final_price,
                appliance_brand=(str(obj.get("appliance_brand") or "").strip() or None),
                appliance_model=(str(obj.get("appliance_model") or "").strip() or None),
                appliance_type=(str(obj.get("appliance_type") or "").strip() or None),
            ),
        )
        count += 1
    logger.info("imported %d parts from %s", count, p)
    return count
