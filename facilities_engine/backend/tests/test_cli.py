# backend/tests/test_cli.py
from __future__ import annotations

import json

import pytest

from maintenance_engine import db as db_module
from maintenance_engine.cli import __main__ as cli


@pytest.fixture()
def cli_db(monkeypatch, session_factory):
    monkeypatch.setattr(db_module, "SessionLocal", session_factory)
    monkeypatch.setattr(cli, "init_db", lambda: None)
    # log lines would otherwise land in the captured stdout next to the JSON result
    monkeypatch.setattr(cli, "configure_logging", lambda: None)
    return session_factory


def test_seed_then_import_csv(cli_db, store, tmp_path, capsys):
    assert cli.main(["seed-defaults", "--admin-id", "ops", "--sample-location", "Delilah"]) == 0
    seeded = json.loads(capsys.readouterr().out)
    assert seeded["admin_id"] == "ops"
    assert seeded["location_id"]

    # seeding twice reuses the same reference documents
    assert cli.main(["seed-defaults", "--admin-id", "ops", "--sample-location", "Delilah"]) == 0
    again = json.loads(capsys.readouterr().out)
    assert again["company_id"] == seeded["company_id"]
    assert again["location_id"] == seeded["location_id"]

    csv_path = tmp_path / "schedule.csv"
    csv_path.write_bytes(
        b"RESTAURANT,SERVICE TYPE,NEXT SERVICE,FREQUENCY\n"
        b"Delilah,Hood Cleaning,02/01/2024,QUARTERLY\n"
        b"Unknown Spot,Hood Cleaning,02/01/2024,MONTHLY\n"
    )
    assert cli.main(["import-csv", str(csv_path), "--admin-id", "ops"]) == 2
    out = json.loads(capsys.readouterr().out)
    assert out["created"] == 1
    assert [e["row"] for e in out["errors"]] == [2]
    assert len(store.query("recurringWorkOrders")) == 1


def test_execute_unknown_definition_reports_error(cli_db, capsys):
    assert cli.main(["execute", "missing"]) == 1
    out = json.loads(capsys.readouterr().out)
    assert out["status"] == 404


def test_import_csv_requires_a_known_admin(cli_db, store, tmp_path, capsys):
    missing = tmp_path / "never-read.csv"

    # the admin check runs before the file is touched
    assert cli.main(["import-csv", str(missing), "--admin-id", "not-an-admin"]) == 1
    out = json.loads(capsys.readouterr().out)
    assert out["status"] == 403
    assert out["error"] == "Only admins can import recurring work orders"
    assert store.query("recurringWorkOrders") == []
