"""
SQLite-backed storage for the bronze and silver layers.

Every extent lives in a table named "<layer>_<extent>". Extents are only ever
replaced wholesale: the new rows are written to a staging table and swapped
in with a drop and rename inside one transaction, so a reader sees either the
previous version or the new one, never a half-written table. Each swap bumps
the extent's version in the _extent_versions table.
"""
import os
import sqlite3
import logging
from datetime import datetime
from typing import Dict, List, Optional

import pandas as pd

from .errors import ExtentNotFoundError
from .schemas import LAYER_SCHEMAS, coerce_frame


logger = logging.getLogger("sqlite_warehouse.store")

LAYERS = ("bronze", "silver")
VERSIONS_TABLE = "_extent_versions"


def table_name(layer: str, extent: str) -> str:
    if layer not in LAYERS:
        raise ValueError(f"Invalid layer: {layer}")
    return f"{layer}_{extent}"


class WarehouseStore:
    """Layered extent store on a single SQLite database file."""

    def __init__(self, db_path: str):
        """
        Initialize the store with database path.

        Args:
            db_path: Path to the SQLite database file, or ":memory:"
        """
        self.db_path = db_path
        self._memory_conn = None
        if db_path == ":memory:":
            # a private in-memory database only lives as long as its connection
            self._memory_conn = sqlite3.connect(db_path)
        else:
            self._ensure_db_directory()
        self._create_versions_table()

    def _ensure_db_directory(self) -> None:
        """Ensure the database directory exists."""
        directory = os.path.dirname(self.db_path)
        if directory:
            os.makedirs(directory, exist_ok=True)

    def connect(self) -> sqlite3.Connection:
        """
        Create a connection to the SQLite database.

        Returns:
            SQLite connection object
        """
        if self._memory_conn is not None:
            return self._memory_conn
        return sqlite3.connect(self.db_path)

    def _close(self, conn: sqlite3.Connection) -> None:
        if conn is not self._memory_conn:
            conn.close()

    def _create_versions_table(self) -> None:
        conn = self.connect()
        try:
            conn.execute(f'''
            CREATE TABLE IF NOT EXISTS {VERSIONS_TABLE} (
                layer TEXT NOT NULL,
                extent TEXT NOT NULL,
                version INTEGER NOT NULL,
                row_count INTEGER NOT NULL,
                refreshed_at TEXT NOT NULL,
                PRIMARY KEY (layer, extent)
            )
            ''')
            conn.commit()
        finally:
            self._close(conn)

    def replace(self, layer: str, extent: str, df: pd.DataFrame) -> int:
        """
        Atomically replace an extent with the rows of df.

        Args:
            layer: 'bronze' or 'silver'
            extent: Extent name, e.g. 'crm_cust_info'
            df: New contents of the extent

        Returns:
            The new version number of the extent
        """
        target = table_name(layer, extent)
        staging = f"{target}__staging"
        conn = self.connect()
        try:
            # pandas commits on its own, so the staging table is written first
            # and only the swap runs inside our transaction
            df.to_sql(staging, conn, if_exists="replace", index=False)

            conn.execute("BEGIN TRANSACTION")
            try:
                conn.execute(f'DROP TABLE IF EXISTS "{target}"')
                conn.execute(f'ALTER TABLE "{staging}" RENAME TO "{target}"')
                row = conn.execute(
                    f"SELECT version FROM {VERSIONS_TABLE} WHERE layer = ? AND extent = ?",
                    (layer, extent),
                ).fetchone()
                version = (row[0] if row else 0) + 1
                conn.execute(
                    f"INSERT OR REPLACE INTO {VERSIONS_TABLE} "
                    "(layer, extent, version, row_count, refreshed_at) VALUES (?, ?, ?, ?, ?)",
                    (layer, extent, version, len(df), datetime.now().strftime('%Y-%m-%d %H:%M:%S')),
                )
                conn.commit()
            except sqlite3.Error:
                conn.rollback()
                conn.execute(f'DROP TABLE IF EXISTS "{staging}"')
                conn.commit()
                raise

            logger.debug(f"Replaced {target} with {len(df)} rows (version {version})")
            return version
        finally:
            self._close(conn)

    def exists(self, layer: str, extent: str) -> bool:
        conn = self.connect()
        try:
            row = conn.execute(
                "SELECT 1 FROM sqlite_master WHERE type = 'table' AND name = ?",
                (table_name(layer, extent),),
            ).fetchone()
            return row is not None
        finally:
            self._close(conn)

    def read(self, layer: str, extent: str) -> pd.DataFrame:
        """
        Read an extent back as a DataFrame with its layout dtypes restored.

        Raises:
            ExtentNotFoundError: if the extent has never been written
        """
        if not self.exists(layer, extent):
            raise ExtentNotFoundError(f"{layer} extent '{extent}' has not been loaded")

        conn = self.connect()
        try:
            df = pd.read_sql(f'SELECT * FROM "{table_name(layer, extent)}"', conn)
        finally:
            self._close(conn)

        columns = LAYER_SCHEMAS.get(layer, {}).get(extent)
        if columns is not None:
            df = coerce_frame(df, columns)
        return df

    def version(self, layer: str, extent: str) -> Optional[int]:
        """Current version of an extent, or None if it was never written."""
        conn = self.connect()
        try:
            row = conn.execute(
                f"SELECT version FROM {VERSIONS_TABLE} WHERE layer = ? AND extent = ?",
                (layer, extent),
            ).fetchone()
            return row[0] if row else None
        finally:
            self._close(conn)

    def list_extents(self, layer: str) -> List[str]:
        conn = self.connect()
        try:
            rows = conn.execute(
                f"SELECT extent FROM {VERSIONS_TABLE} WHERE layer = ? ORDER BY extent",
                (layer,),
            ).fetchall()
            return [r[0] for r in rows]
        finally:
            self._close(conn)

    def get_layer_stats(self) -> Dict[str, Dict[str, int]]:
        """
        Get record counts for every stored extent.

        Returns:
            Dictionary of layer -> {extent: row count}
        """
        stats = {layer: {} for layer in LAYERS}
        conn = self.connect()
        try:
            for layer, extent, row_count in conn.execute(
                f"SELECT layer, extent, row_count FROM {VERSIONS_TABLE} ORDER BY layer, extent"
            ):
                stats.setdefault(layer, {})[extent] = row_count
        finally:
            self._close(conn)
        return stats
