from __future__ import annotations

import argparse
import logging

from repairdesk.config import ConfigError, load_config
from repairdesk.db import Db, DbError
from repairdesk.importers import ImportFileError, import_parts_directory_json
from repairdesk.repositories.appliance_model_repo import ApplianceModelRepository
from repairdesk.repositories.part_directory_repo import PartDirectoryRepository
from repairdesk.repositories.part_line_repo import PartLineRepository
from repairdesk.repositories.work_order_repo import WorkOrderRepository
from repairdesk.services.work_order_service import WorkOrderService
from repairdesk.web import create_app


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="RepairDesk work-order service")
    parser.add_argument("--config", default="config.toml", help="path to config TOML")
    sub = parser.add_subparsers(dest="command", required=True)

    serve = sub.add_parser("serve", help="run the HTTP API")
    serve.add_argument("--host", default="127.0.0.1")
    serve.add_argument("--port", type=int, default=5000)

    imp = sub.add_parser("import-parts", help="load a parts directory JSON file")
    imp.add_argument("path")
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    try:
        cfg = load_config(args.config)
        logging.basicConfig(
            level=cfg.log_level,
            format="[%(asctime)s] [%(levelname)s] [%(name)s] %(message)s",
        )
        db = Db(cfg.db)
        part_directory_repo = PartDirectoryRepository()

        if args.command == "import-parts":
            with db.transaction() as conn:
                n = import_parts_directory_json(conn, args.path, part_directory_repo, cfg.pricing)
            print(f"Imported/updated parts: {n}")
            return 0

        service = WorkOrderService(
            work_order_repo=WorkOrderRepository(),
            part_line_repo=PartLineRepository(),
            part_directory_repo=part_directory_repo,
            appliance_model_repo=ApplianceModelRepository(),
            pricing=cfg.pricing,
        )
        app = create_app(db, service)
        app.run(host=args.host, port=args.port)
        return 0
    except ConfigError as e:
        print(f"[CONFIG ERROR] {e}")
        return 2
    except DbError as e:
        print(f"[DB ERROR] {e}")
        return 3
    except ImportFileError as e:
        print(f"[IMPORT ERROR] {e}")
        return 4
    except KeyboardInterrupt:
        print("\nInterrupted.")
        return 130


if __name__ == "__main__":
    raise SystemExit(main())
