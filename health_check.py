# health_check.py
"""
System health check utility
Run: python health_check.py
"""

import importlib
import sys

from sqlalchemy import inspect, text

from calibration_manager import TABLE_KEY, CalibrationTableManager
from logger import log_error, log_info, log_warning
from models import TankAttribute
from strapping_table import validate
from timezone_utils import format_local_datetime, utc_now

REQUIRED_TABLES = ("tanks", "tank_attributes")
# import name -> distribution name
REQUIRED_PACKAGES = {
    "pandas": "pandas",
    "sqlalchemy": "SQLAlchemy",
    "dotenv": "python-dotenv",
    "pytz": "pytz",
    "openpyxl": "openpyxl",
}


def check_database(bind=None):
    """Check the database is reachable and has the gauging tables"""
    from db import engine

    bind = bind or engine
    try:
        with bind.connect() as conn:
            conn.execute(text("SELECT 1"))
        existing = set(inspect(bind).get_table_names())
    except Exception as e:
        return False, f"Database error: {e}"

    missing = [t for t in REQUIRED_TABLES if t not in existing]
    if missing:
        return False, f"Missing tables: {', '.join(missing)} (run init_db())"
    return True, f"Database OK - All {len(REQUIRED_TABLES)} tables accessible"


def check_dependencies():
    """Check if all required packages are installed"""
    missing = []
    for module, dist in REQUIRED_PACKAGES.items():
        try:
            importlib.import_module(module)
        except ImportError:
            missing.append(dist)

    if missing:
        return False, f"Missing packages: {', '.join(missing)}"
    return True, f"All {len(REQUIRED_PACKAGES)} required packages installed"


def check_calibration_tables(session):
    """Load and validate every stored calibration table"""
    tank_ids = [row.tank_id for row in session.query(TankAttribute.tank_id)
                                             .filter(TankAttribute.key == TABLE_KEY)
                                             .all()]
    if not tank_ids:
        return True, "No calibration tables stored"

    problems = []
    for tank_id in tank_ids:
        table = CalibrationTableManager.load_table(session, tank_id)
        if table is None:
            problems.append(f"{tank_id}: unreadable")
            continue
        result = validate(table)
        if not result.valid:
            problems.append(f"{tank_id}: {len(result.errors)} error(s)")

    if problems:
        return False, f"Invalid calibration tables - {'; '.join(problems)}"
    return True, f"All {len(tank_ids)} calibration table(s) valid"


def main():
    """Run all health checks"""
    from db import get_session

    print("=" * 60)
    print("TANK GAUGING HEALTH CHECK")
    print("=" * 60)
    print(f"Time: {format_local_datetime(utc_now())}")
    print("=" * 60)

    session = get_session()
    checks = [
        ("Database", check_database),
        ("Dependencies", check_dependencies),
        ("Calibration tables", lambda: check_calibration_tables(session)),
    ]

    all_passed = True
    try:
        for check_name, check_func in checks:
            try:
                passed, message = check_func()
            except Exception as e:
                log_error(f"{check_name} check raised", exc_info=True)
                passed, message = False, f"Exception - {e}"

            mark = "OK  " if passed else "FAIL"
            print(f"[{mark}] {check_name:20s}: {message}")
            all_passed = all_passed and passed
    finally:
        session.close()

    print("=" * 60)

    if all_passed:
        print("ALL CHECKS PASSED - System healthy!")
        log_info("Health check passed")
        return 0
    print("SOME CHECKS FAILED - Review output above")
    log_warning("Health check failed")
    return 1


if __name__ == "__main__":
    exit_code = main()
    sys.exit(exit_code)
