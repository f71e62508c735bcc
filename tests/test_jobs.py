"""Command-line entry points."""

import json

from carebill.db import init_db
from carebill.jobs import daily_room_billing


def test_room_billing_cli(db, seed, admitted, engine, monkeypatch, capsys):
    from sqlalchemy.orm import sessionmaker

    seed.add_rate("Deluxe", 1000)
    monkeypatch.setattr(daily_room_billing, "SessionLocal",
                        sessionmaker(bind=engine, autoflush=False))
    monkeypatch.setattr(daily_room_billing, "setup_logging",
                        lambda *a, **kw: None)

    code = daily_room_billing.main(
        ["--at", "2025-01-03T00:30:00", "--case-timeout", "0", "--json"])
    assert code == 0
    out = json.loads(capsys.readouterr().out)
    assert out["lines_added"] == 2
    assert out["cases"][0]["case_id"] == "CASE-IPD-1"


def test_room_billing_cli_offset_time(db, seed, admitted, engine, monkeypatch,
                                      capsys):
    from sqlalchemy.orm import sessionmaker

    seed.add_rate("Deluxe", 1000)
    monkeypatch.setattr(daily_room_billing, "SessionLocal",
                        sessionmaker(bind=engine, autoflush=False))
    monkeypatch.setattr(daily_room_billing, "setup_logging",
                        lambda *a, **kw: None)

    code = daily_room_billing.main(
        ["--at", "2025-01-02T19:00:00+00:00", "--case-timeout", "0", "--json"])
    assert code == 0
    out = json.loads(capsys.readouterr().out)
    assert out["lines_added"] == 2
    assert out["started_at"] == "2025-01-03T00:30:00"


def test_room_billing_cli_flags_failures(db, seed, admitted, engine,
                                         monkeypatch):
    from sqlalchemy.orm import sessionmaker

    monkeypatch.setattr(daily_room_billing, "SessionLocal",
                        sessionmaker(bind=engine, autoflush=False))
    monkeypatch.setattr(daily_room_billing, "setup_logging",
                        lambda *a, **kw: None)

    # no Deluxe rate and no bed rate: every day fails
    assert daily_room_billing.main(["--at", "2025-01-03T00:30:00"]) == 1


def test_init_db_creates_tables(engine, capsys):
    names = init_db.run(bind=engine)
    assert {"billing_bills", "billing_bill_services",
            "ipd_admissions"} <= names
