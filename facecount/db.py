"""
Database layer for recording counting runs.

We maintain a SQLite database with two small tables: one row per run with
its parameters and totals, and one row per processed image with its
detection and individual counts.  This allows earlier results to be
compared after changing thresholds.

The tables are created automatically if they do not exist when connecting.
All interactions are implemented using SQLAlchemy Core.
"""

from __future__ import annotations

import datetime as _dt
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy import (
    Table, Column, Integer, String, DateTime, JSON, MetaData,
    ForeignKey, create_engine, select, insert, update
)
from sqlalchemy.engine import Engine, Connection
from sqlalchemy.exc import SQLAlchemyError, OperationalError


def _make_metadata() -> MetaData:
    """Define and return SQLAlchemy metadata with our table definitions."""
    metadata = MetaData()
    Table(
        "runs", metadata,
        Column("id", Integer, primary_key=True, autoincrement=True),
        Column("input_dir", String, nullable=False),
        Column("model_name", String, nullable=False),
        Column("parameters", JSON, nullable=False),
        Column("status", String, nullable=False, default="running"),
        Column("start_time", DateTime, nullable=False),
        Column("end_time", DateTime, nullable=True),
        Column("n_images", Integer, nullable=True),
        Column("n_individuals", Integer, nullable=True),
        Column("command_line", String, nullable=True),
        Column("notes", String, nullable=True),
    )
    Table(
        "images", metadata,
        Column("id", Integer, primary_key=True, autoincrement=True),
        Column("run_id", Integer, ForeignKey("runs.id"), nullable=False),
        Column("path", String, nullable=False),
        Column("n_detections", Integer, nullable=False),
        Column("n_unique", Integer, nullable=False),
        Column("n_individuals", Integer, nullable=False),
        Column("error", String, nullable=True),
    )
    return metadata


_METADATA = _make_metadata()
RUNS = _METADATA.tables["runs"]
IMAGES = _METADATA.tables["images"]


def _utcnow() -> _dt.datetime:
    return _dt.datetime.now(_dt.timezone.utc).replace(tzinfo=None)


def init_db(db_path: Path) -> Engine:
    """Initialize the database and create tables if they do not exist.

    Parameters
    ----------
    db_path: Path
        Location of the SQLite database file.

    Returns
    -------
    sqlalchemy.Engine
        Connected engine instance.
    """
    engine = create_engine(f"sqlite:///{db_path}")
    _METADATA.create_all(engine)
    return engine


def _bulk_insert_with_ids(conn: Connection, table: Table, rows: List[Dict[str, Any]]) -> List[int]:
    """Insert many rows and return their primary keys.

    Uses ``INSERT ... RETURNING`` when available, otherwise falls back to
    row-by-row inserts to remain compatible with older SQLite versions.
    """
    if not rows:
        return []
    stmt = insert(table)
    try:
        result = conn.execute(stmt.returning(table.c.id), rows)
        ids = [int(pk) for pk in result.scalars()]
        conn.commit()
        return ids
    except OperationalError as exc:
        # RETURNING not supported on this SQLite build; fall back to per-row inserts
        if conn.in_transaction():
            conn.rollback()
        if "RETURNING" not in str(exc).upper():
            raise
    except SQLAlchemyError:
        if conn.in_transaction():
            conn.rollback()
        raise

    inserted_ids: List[int] = []
    for row in rows:
        single_result = conn.execute(insert(table).values(**row))
        inserted_ids.append(int(single_result.inserted_primary_key[0]))
    conn.commit()
    return inserted_ids


def record_run_start(conn: Connection, input_dir: Path, model_name: str,
                     parameters: Dict[str, Any], command_line: Optional[str] = None) -> int:
    """Insert a new run row and return its ID.

    Parameters
    ----------
    conn: Connection
        Open database connection.
    input_dir: Path
        Folder scanned by the run.
    model_name: str
        Name of the detector model.
    parameters: dict
        JSON‑serialisable dictionary of configuration parameters.
    command_line: str, optional
        Original command line invocation.

    Returns
    -------
    int
        ID of the newly created run.
    """
    result = conn.execute(
        insert(RUNS).values(
            input_dir=str(input_dir),
            model_name=model_name,
            parameters=parameters,
            status="running",
            start_time=_utcnow(),
            command_line=command_line,
        )
    )
    conn.commit()
    return int(result.inserted_primary_key[0])


def record_run_end(conn: Connection, run_id: int, status: str, n_images: int,
                   n_individuals: int, notes: Optional[str] = None) -> None:
    """Update a run row to mark it as finished.

    Parameters
    ----------
    conn: Connection
        Open database connection.
    run_id: int
        Primary key of the run to update.
    status: str
        Final status: ``"done"`` or ``"no_images"``.
    n_images: int
        Number of images processed.
    n_individuals: int
        Sum of the per‑image individual counts.
    notes: str, optional
        Additional notes to store.
    """
    conn.execute(
        update(RUNS)
        .where(RUNS.c.id == run_id)
        .values(
            status=status,
            end_time=_utcnow(),
            n_images=n_images,
            n_individuals=n_individuals,
            notes=notes,
        )
    )
    conn.commit()


def update_run_status(conn: Connection, run_id: int, status: str, notes: Optional[str] = None) -> None:
    """Update the status (and optionally notes) for a run.

    Used to mark a run as interrupted when processing fails.
    """
    conn.execute(
        update(RUNS)
        .where(RUNS.c.id == run_id)
        .values(status=status, end_time=_utcnow(), notes=notes)
    )
    conn.commit()


def insert_images(conn: Connection, run_id: int, image_records: Iterable[Dict[str, Any]]) -> List[int]:
    """Bulk insert per‑image counts and return inserted primary keys.

    Each record must include ``path``, ``n_detections``, ``n_unique`` and
    ``n_individuals`` and may include ``error``.
    """
    # every row carries every column; executemany keys off the first row
    rows = [{"run_id": run_id, "error": None, **rec} for rec in image_records]
    return _bulk_insert_with_ids(conn, IMAGES, rows)


def get_run(conn: Connection, run_id: int) -> Optional[Dict[str, Any]]:
    """Retrieve a single run by ID as a dictionary, or ``None`` if not found."""
    row = conn.execute(select(RUNS).where(RUNS.c.id == run_id)).mappings().first()
    return dict(row) if row else None


def list_runs(conn: Connection, status: Optional[str] = None) -> List[Dict[str, Any]]:
    """Return a list of run records, newest first, optionally filtered by status."""
    query = select(RUNS)
    if status:
        query = query.where(RUNS.c.status == status)
    rows = conn.execute(query.order_by(RUNS.c.start_time.desc(), RUNS.c.id.desc())).mappings().all()
    return [dict(row) for row in rows]


def get_images(conn: Connection, run_id: int) -> List[Dict[str, Any]]:
    """Return the image rows of a run in insertion order."""
    rows = conn.execute(
        select(IMAGES).where(IMAGES.c.run_id == run_id).order_by(IMAGES.c.id)
    ).mappings().all()
    return [dict(row) for row in rows]
