"""Shared fixtures for the tank gauging tests."""

from __future__ import annotations

import os
import tempfile

# Must be set before logger/db are imported by the modules under test
os.environ.setdefault("GAUGING_LOG_DIR", tempfile.mkdtemp(prefix="gauging-logs-"))
os.environ.setdefault("DB_URL", "sqlite:///:memory:")

import pytest
from sqlalchemy.orm import sessionmaker

from db import init_db, make_engine
from strapping_models import FACTOR_CODES, CalibrationEntry, CalibrationTable, FactorCode
from timezone_utils import utc_now


def make_entry(feet: int, inches: int, sequence: int, volume: float, code: FactorCode = FactorCode.F260X1) -> CalibrationEntry:
    """Entry with a single populated factor column."""
    volumes = {c: 0.0 for c in FACTOR_CODES}
    volumes[code] = volume
    return CalibrationEntry(feet, inches, sequence, volumes)


@pytest.fixture
def two_point_table() -> CalibrationTable:
    """0 ft -> 0 bbl, 1 ft -> 100 bbl in the 260X1 column."""
    now = utc_now()
    return CalibrationTable(
        tank_id="tank-1",
        tank_tag="TK-01",
        entries=[make_entry(0, 0, 0, 0.0), make_entry(1, 0, 1, 100.0)],
        created_at=now,
        modified_at=now,
        created_by="tests",
        default_factor_code="260X1",
        calibration_date=now,
        calibration_agency="Test Agency",
        certificate_number="CERT-1",
    )


@pytest.fixture
def engine(tmp_path):
    """File-backed sqlite engine with the schema created."""
    eng = make_engine(f"sqlite:///{tmp_path / 'gauging.db'}")
    init_db(eng)
    yield eng
    eng.dispose()


@pytest.fixture
def session(engine):
    Session = sessionmaker(bind=engine, future=True)
    sess = Session()
    try:
        yield sess
    finally:
        sess.close()
