"""
Module: inventory_kernel.db.triggers
Responsibility: Installing, removing and verifying the PostgreSQL triggers
    that make the movement ledger append-only and batch costs frozen at the
    database level.  This is the complement to the ORM-level listeners in
    db/immutability.py.
Architecture position: Kernel > DB.  May import from db/ only.  MUST NOT
    import from models/, services/, selectors/, domain/, or outer layers.

Invariants enforced:
    - inventory_movements rows: no UPDATE, no DELETE, ever.
    - inventory_batches rows: cost_per_unit_minor, item_id and lot_number
      never change; rows are never deleted.

Failure modes:
    - PostgreSQL RAISE EXCEPTION on any violation (surfaced by SQLAlchemy
      as InternalError/ProgrammingError/IntegrityError depending on driver).
    - Installing on a non-PostgreSQL engine is a no-op for callers that use
      create_tables(); calling install_immutability_triggers() directly on
      another backend raises RuntimeError.

Audit relevance:
    Even raw SQL or bulk statements that bypass the ORM cannot rewrite
    history or re-price a batch after the fact.
"""

from sqlalchemy import text
from sqlalchemy.engine import Engine

MOVEMENT_TRIGGER_SQL = """
CREATE OR REPLACE FUNCTION inventory_movement_append_only()
RETURNS TRIGGER AS $$
BEGIN
    RAISE EXCEPTION 'IMMUTABILITY_VIOLATION: inventory movement % is append-only (%)',
        OLD.id, TG_OP;
END;
$$ LANGUAGE plpgsql;

DROP TRIGGER IF EXISTS trg_inventory_movement_immutability_update ON inventory_movements;
CREATE TRIGGER trg_inventory_movement_immutability_update
    BEFORE UPDATE ON inventory_movements
    FOR EACH ROW EXECUTE FUNCTION inventory_movement_append_only();

DROP TRIGGER IF EXISTS trg_inventory_movement_immutability_delete ON inventory_movements;
CREATE TRIGGER trg_inventory_movement_immutability_delete
    BEFORE DELETE ON inventory_movements
    FOR EACH ROW EXECUTE FUNCTION inventory_movement_append_only();
"""

BATCH_TRIGGER_SQL = """
CREATE OR REPLACE FUNCTION inventory_batch_frozen_fields()
RETURNS TRIGGER AS $$
BEGIN
    IF NEW.cost_per_unit_minor IS DISTINCT FROM OLD.cost_per_unit_minor
       OR NEW.item_id IS DISTINCT FROM OLD.item_id
       OR NEW.lot_number IS DISTINCT FROM OLD.lot_number THEN
        RAISE EXCEPTION 'IMMUTABILITY_VIOLATION: batch % identity and cost are frozen',
            OLD.id;
    END IF;
    RETURN NEW;
END;
$$ LANGUAGE plpgsql;

CREATE OR REPLACE FUNCTION inventory_batch_no_delete()
RETURNS TRIGGER AS $$
BEGIN
    RAISE EXCEPTION 'IMMUTABILITY_VIOLATION: batch % cannot be deleted', OLD.id;
END;
$$ LANGUAGE plpgsql;

DROP TRIGGER IF EXISTS trg_inventory_batch_immutability_update ON inventory_batches;
CREATE TRIGGER trg_inventory_batch_immutability_update
    BEFORE UPDATE ON inventory_batches
    FOR EACH ROW EXECUTE FUNCTION inventory_batch_frozen_fields();

DROP TRIGGER IF EXISTS trg_inventory_batch_immutability_delete ON inventory_batches;
CREATE TRIGGER trg_inventory_batch_immutability_delete
    BEFORE DELETE ON inventory_batches
    FOR EACH ROW EXECUTE FUNCTION inventory_batch_no_delete();
"""

DROP_SQL = """
DROP TRIGGER IF EXISTS trg_inventory_movement_immutability_update ON inventory_movements;
DROP TRIGGER IF EXISTS trg_inventory_movement_immutability_delete ON inventory_movements;
DROP TRIGGER IF EXISTS trg_inventory_batch_immutability_update ON inventory_batches;
DROP TRIGGER IF EXISTS trg_inventory_batch_immutability_delete ON inventory_batches;
DROP FUNCTION IF EXISTS inventory_movement_append_only();
DROP FUNCTION IF EXISTS inventory_batch_frozen_fields();
DROP FUNCTION IF EXISTS inventory_batch_no_delete();
"""

# Installation order matters only in that tables must already exist.
TRIGGER_SQL = {
    "movements": MOVEMENT_TRIGGER_SQL,
    "batches": BATCH_TRIGGER_SQL,
}

ALL_TRIGGER_NAMES = [
    "trg_inventory_movement_immutability_update",
    "trg_inventory_movement_immutability_delete",
    "trg_inventory_batch_immutability_update",
    "trg_inventory_batch_immutability_delete",
]


def _require_postgres(engine: Engine) -> None:
    if engine.dialect.name != "postgresql":
        raise RuntimeError(
            f"Immutability triggers require PostgreSQL, got {engine.dialect.name}"
        )


def install_immutability_triggers(engine: Engine) -> None:
    """
    Install database-level immutability triggers.

    Preconditions: Tables must exist (call after metadata.create_all()).
    Postconditions: All triggers in ALL_TRIGGER_NAMES are installed.
        Functions use CREATE OR REPLACE, so re-installing is safe.
    """
    _require_postgres(engine)
    with engine.connect() as conn:
        for sql_content in TRIGGER_SQL.values():
            conn.execute(text(sql_content))
        conn.commit()


def uninstall_immutability_triggers(engine: Engine) -> None:
    """
    Remove database-level immutability triggers.

    WARNING: Only for test teardown and schema migrations.
    """
    _require_postgres(engine)
    with engine.connect() as conn:
        conn.execute(text(DROP_SQL))
        conn.commit()


def get_installed_triggers(engine: Engine) -> list[str]:
    """List the installed immutability triggers, sorted by name."""
    if engine.dialect.name != "postgresql":
        return []
    with engine.connect() as conn:
        result = conn.execute(
            text(
                "SELECT tgname FROM pg_trigger "
                "WHERE tgname = ANY(:names) ORDER BY tgname"
            ),
            {"names": ALL_TRIGGER_NAMES},
        )
        return [row[0] for row in result]


def triggers_installed(engine: Engine) -> bool:
    """True if every trigger in ALL_TRIGGER_NAMES is installed."""
    return len(get_installed_triggers(engine)) == len(ALL_TRIGGER_NAMES)
