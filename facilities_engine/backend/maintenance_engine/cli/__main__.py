# backend/maintenance_engine/cli/__main__.py
from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path

from ..clients.document_renderer import HttpDocumentRenderer
from ..clients.notifications import SendGridDispatcher
from ..clients.payment_links import StripeCheckoutClient
from ..config import settings
from ..db import init_db, session_scope
from ..domain.importers.schedule_csv import normalize_schedule_csv
from ..errors import EngineError, Forbidden
from ..logging_config import configure_logging
from ..services.execution_orchestrator import ExecutionOrchestrator
from ..services.import_reconciler import ImportReconciler
from ..store import DocumentStore
from .seed_defaults import seed_defaults


def _print(payload: dict) -> None:
    print(json.dumps(payload, indent=2, default=str))


def cmd_init_db(args: argparse.Namespace) -> int:
    init_db()
    _print({"ok": True})
    return 0


def cmd_seed_defaults(args: argparse.Namespace) -> int:
    init_db()
    out = seed_defaults(
        admin_id=args.admin_id,
        admin_email=args.admin_email,
        client_email=args.client_email,
        sample_location=args.sample_location,
    )
    _print(
        {
            "ok": True,
            "company_id": out.company_id,
            "client_id": out.client_id,
            "admin_id": out.admin_id,
            "admin_token": out.admin_token,
            "location_id": out.location_id,
        }
    )
    return 0


def cmd_import_csv(args: argparse.Namespace) -> int:
    with session_scope() as db:
        store = DocumentStore(db)
        # same gate as the HTTP import: the id must be a known admin user
        if store.get(settings.admin_collection, args.admin_id) is None:
            raise Forbidden("Only admins can import recurring work orders")
        rows = normalize_schedule_csv(Path(args.path).read_bytes())
        result = ImportReconciler(store).import_batch(rows, admin_id=args.admin_id)
    _print(result.model_dump())
    return 0 if not result.errors else 2


def cmd_execute(args: argparse.Namespace) -> int:
    with session_scope() as db:
        orchestrator = ExecutionOrchestrator(
            DocumentStore(db),
            renderer=HttpDocumentRenderer(),
            payments=StripeCheckoutClient(),
            notifier=SendGridDispatcher(),
        )
        result = orchestrator.execute(args.recurring_work_order_id, args.execution_id)
    _print(
        {
            "outcome": result.outcome,
            "message": result.message,
            "executionId": result.execution_id,
            "nextExecution": result.next_execution,
        }
    )
    return 0


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="maintenance_engine")
    sub = p.add_subparsers(dest="command", required=True)

    sub.add_parser("init-db", help="create tables").set_defaults(func=cmd_init_db)

    seed = sub.add_parser("seed-defaults", help="default company, client and admin user for imports")
    seed.add_argument("--admin-id", default="admin")
    seed.add_argument("--admin-email", default="admin@maintenance.local")
    seed.add_argument("--client-email", default="billing@maintenance.local")
    seed.add_argument("--sample-location", default=None)
    seed.set_defaults(func=cmd_seed_defaults)

    imp = sub.add_parser("import-csv", help="import a service schedule spreadsheet")
    imp.add_argument("path")
    imp.add_argument("--admin-id", required=True)
    imp.set_defaults(func=cmd_import_csv)

    ex = sub.add_parser("execute", help="run one cycle of a recurring work order")
    ex.add_argument("recurring_work_order_id")
    ex.add_argument("--execution-id", default=None)
    ex.set_defaults(func=cmd_execute)
    return p


def main(argv: list[str] | None = None) -> int:
    configure_logging()
    args = build_parser().parse_args(argv)
    try:
        return int(args.func(args))
    except EngineError as e:
        _print({"ok": False, "error": e.message, "status": e.status_code})
        return 1


if __name__ == "__main__":
    sys.exit(main())
