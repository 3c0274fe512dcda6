# calibration_manager.py
"""
Persistence of calibration tables as tank attributes.

The table is stored as JSON text under ``strappingTable`` together with
version / last-modified / author attributes. Methods flush but never
commit: the caller owns the transaction.
"""

from typing import Dict, Iterable, Optional, Union

from sqlalchemy.orm import Session

from logger import get_logger
from models import Tank, TankAttribute
from strapping_models import CalibrationTable, Outcome, OutcomeStatus, TankShape, ValidationResult
from strapping_table import (
    import_fractions_from_csv,
    import_from_csv,
    table_from_json,
    table_to_json,
    validate,
)
from timezone_utils import to_iso, utc_now

log = get_logger("calibration_manager")

TABLE_KEY = "strappingTable"
VERSION_KEY = "strappingTableVersion"
LAST_MODIFIED_KEY = "strappingTableLastModified"
UPDATED_BY_KEY = "strappingTableUpdatedBy"
TABLE_KEYS = (TABLE_KEY, VERSION_KEY, LAST_MODIFIED_KEY, UPDATED_BY_KEY)


class CalibrationTableManager:
    """Handles calibration table storage for tanks"""

    @staticmethod
    def _get_tank(session: Session, tank_id: str) -> Tank:
        tank = session.query(Tank).filter(Tank.id == tank_id).one_or_none()
        if not tank:
            raise ValueError(f"Tank ID {tank_id} not found")
        return tank

    @staticmethod
    def register_tank(
        session: Session,
        tank_id: str,
        tag: str,
        height_m: float = 0.0,
        diameter_m: float = 0.0,
        shape: Union[TankShape, str, None] = None,
    ) -> Dict:
        """
        Create or update a tank row.
        Returns a dictionary (not the ORM object) to avoid session detachment issues.
        """
        if not isinstance(shape, TankShape):
            shape = TankShape.parse(shape)

        tank = session.query(Tank).filter(Tank.id == tank_id).one_or_none()
        if tank is None:
            tank = Tank(id=tank_id, tag=tag)
            session.add(tank)
        tank.tag = tag
        tank.height_m = float(height_m or 0.0)
        tank.diameter_m = float(diameter_m or 0.0)
        tank.shape = shape
        session.flush()

        return {
            "id": tank.id,
            "tag": tank.tag,
            "height_m": tank.height_m,
            "diameter_m": tank.diameter_m,
            "shape": tank.shape.value,
        }

    # ---------- Raw attributes ----------
    @staticmethod
    def get_table_json(session: Session, tank_id: str) -> Optional[str]:
        attr = (session.query(TankAttribute)
                       .filter(TankAttribute.tank_id == tank_id, TankAttribute.key == TABLE_KEY)
                       .one_or_none())
        return attr.value if attr else None

    @staticmethod
    def set_table_attributes(session: Session, tank_id: str, attributes: Dict[str, str]):
        """Upsert string attributes on an existing tank."""
        CalibrationTableManager._get_tank(session, tank_id)

        existing = {
            a.key: a for a in session.query(TankAttribute)
                                     .filter(TankAttribute.tank_id == tank_id,
                                             TankAttribute.key.in_(list(attributes)))
                                     .all()
        }
        now = utc_now()
        for key, value in attributes.items():
            attr = existing.get(key)
            if attr is None:
                session.add(TankAttribute(tank_id=tank_id, key=key, value=value, updated_at=now))
            else:
                attr.value = value
                attr.updated_at = now
        session.flush()

    @staticmethod
    def delete_attributes(session: Session, tank_id: str, keys: Iterable[str]) -> int:
        deleted = (session.query(TankAttribute)
                          .filter(TankAttribute.tank_id == tank_id, TankAttribute.key.in_(list(keys)))
                          .delete(synchronize_session=False))
        session.flush()
        return deleted

    # ---------- Tables ----------
    @staticmethod
    def load_table(session: Session, tank_id: str) -> Optional[CalibrationTable]:
        """Stored table of a tank; None when missing or unreadable."""
        blob = CalibrationTableManager.get_table_json(session, tank_id)
        if not blob:
            return None
        try:
            return table_from_json(blob)
        except ValueError as ex:
            log.error(f"Stored calibration table for tank {tank_id} is corrupt: {ex}")
            return None

    @staticmethod
    def save_table(
        session: Session,
        tank_id: str,
        table: CalibrationTable,
        author: Optional[str] = None,
    ) -> ValidationResult:
        """
        Validate and store a table. Invalid tables are not written.

        Returns:
            ValidationResult of the table
        """
        result = validate(table)
        if not result.valid:
            log.warning(f"Calibration table for tank {tank_id} rejected: {'; '.join(result.errors)}")
            return result

        table.modified_at = utc_now()
        CalibrationTableManager.set_table_attributes(session, tank_id, {
            TABLE_KEY: table_to_json(table),
            VERSION_KEY: table.version,
            LAST_MODIFIED_KEY: to_iso(table.modified_at),
            UPDATED_BY_KEY: author or table.created_by or "",
        })
        log.info(f"Saved calibration table for tank {table.tank_tag} ({len(table.entries)} entries)")
        return result

    @staticmethod
    def delete_table(session: Session, tank_id: str) -> int:
        """Remove the table attributes; the tank row itself is kept."""
        deleted = CalibrationTableManager.delete_attributes(session, tank_id, TABLE_KEYS)
        if deleted:
            log.info(f"Deleted calibration table for tank {tank_id}")
        return deleted

    @staticmethod
    def import_csv(
        session: Session,
        tank_id: str,
        csv_text: str,
        fractions_csv: Optional[str] = None,
        author: str = "imported",
    ) -> Outcome:
        """
        Editor import flow: parse the certificate, apply an optional fraction
        table, copy the tank geometry onto the table, validate and save.
        """
        tank = CalibrationTableManager._get_tank(session, tank_id)

        outcome = import_from_csv(csv_text, tank.id, tank.tag)
        if not outcome.ok:
            return outcome
        table = outcome.value

        if fractions_csv:
            table.fractions = import_fractions_from_csv(fractions_csv)
        table.created_by = author
        table.tank_height = tank.height_m or 0.0
        table.tank_diameter = tank.diameter_m or 0.0
        table.tank_shape = tank.shape or TankShape.VERTICAL
        table.height_unit = "m"

        result = CalibrationTableManager.save_table(session, tank_id, table, author)
        if not result.valid:
            return Outcome(OutcomeStatus.MALFORMED, None, tuple(result.errors))
        return Outcome.success(table)
