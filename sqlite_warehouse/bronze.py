"""
Bronze layer: load raw CSV extracts into the warehouse unchanged.

Values are parsed to primitives (int, date, text) and nothing else; empty
fields become nulls. A malformed line aborts the load of its own source and
leaves the previously loaded extent in place.
"""
import csv
import os
import time
import logging
from datetime import datetime
from typing import Dict, Iterable, List, Optional, Sequence

import pandas as pd

from .errors import IngestionError
from .schemas import SOURCES, Column, coerce_frame, column_names
from .store import WarehouseStore


logger = logging.getLogger("sqlite_warehouse.bronze")

DATE_FORMAT = "%Y-%m-%d"


def parse_value(raw: str, kind: str):
    """
    Parse one CSV field to its primitive type.

    Raises:
        ValueError: if the field is not blank and cannot be parsed
    """
    if raw is None:
        return None
    raw = str(raw)
    if raw.strip() == "":
        return None
    if kind == "int":
        return int(raw.strip())
    if kind == "float":
        return float(raw.strip())
    if kind in ("date", "datetime"):
        value = raw.strip()
        # extracts carry either a bare date or a full timestamp
        if len(value) == 10:
            return datetime.strptime(value, DATE_FORMAT)
        return datetime.fromisoformat(value)
    return raw


def validate_header(header: List[str], columns: List[Column]) -> Optional[str]:
    """
    Validate the header row of an extract.

    Returns:
        None if the header is usable, otherwise an error message
    """
    if not header:
        return "file is empty or has no header"
    if len(header) != len(columns):
        return f"header has {len(header)} columns, expected {len(columns)}"
    expected = column_names(columns)
    found = [h.strip().lower() for h in header]
    if found != [c.lower() for c in expected]:
        logger.warning(f"Header {header} differs from expected {expected}; loading by position")
    return None


def parse_row(
    source_id: str,
    row: Sequence[str],
    columns: List[Column],
    path: Optional[str] = None,
    line: Optional[int] = None,
) -> list:
    """
    Parse one record's fields against the column layout.

    Raises:
        IngestionError: on a wrong field count or an unparsable field
    """
    if len(row) != len(columns):
        raise IngestionError(
            source_id,
            f"expected {len(columns)} fields, found {len(row)}",
            path=path, line=line,
        )
    record = []
    for (name, kind), raw in zip(columns, row):
        try:
            record.append(parse_value(raw, kind))
        except ValueError as e:
            raise IngestionError(
                source_id,
                f"cannot parse {name}={raw!r} as {kind}: {e}",
                path=path, line=line,
            ) from e
    return record


def read_extract(source_id: str, csv_file: str, columns: List[Column]) -> pd.DataFrame:
    """
    Parse an extract into a raw DataFrame.

    Args:
        source_id: Source the file belongs to (used in error messages)
        csv_file: Path to the CSV file
        columns: Expected column layout

    Returns:
        DataFrame with one row per data line, in file order

    Raises:
        IngestionError: if the file is missing or any line is malformed
    """
    if not os.path.exists(csv_file):
        raise IngestionError(source_id, "file not found", path=csv_file)

    records = []
    with open(csv_file, newline="", encoding="utf-8-sig") as f:
        reader = csv.reader(f)
        header = next(reader, None)
        problem = validate_header(header, columns)
        if problem:
            raise IngestionError(source_id, problem, path=csv_file, line=1)

        for row in reader:
            if not row:
                continue
            records.append(parse_row(source_id, row, columns, path=csv_file, line=reader.line_num))

    df = pd.DataFrame.from_records(records, columns=column_names(columns))
    return coerce_frame(df, columns)


def load(store: WarehouseStore, source_id: str, records: Iterable[Sequence[str]]) -> int:
    """
    Replace the bronze extent of one source with already split records.

    Each record is a sequence of raw text fields in source column order;
    errors report the 1-based record number as the line.

    Returns:
        Number of records loaded
    """
    if source_id not in SOURCES:
        raise IngestionError(source_id, "unknown source")

    columns = SOURCES[source_id].columns
    parsed = [parse_row(source_id, row, columns, line=n) for n, row in enumerate(records, start=1)]
    df = coerce_frame(pd.DataFrame.from_records(parsed, columns=column_names(columns)), columns)
    store.replace("bronze", source_id, df)
    logger.info(f"Loaded {len(df)} records into bronze_{source_id}")
    return len(df)


def load_source(store: WarehouseStore, source_id: str, csv_file: str) -> int:
    """
    Replace the bronze extent of one source with the contents of csv_file.

    Returns:
        Number of records loaded

    Raises:
        IngestionError: if the extract is malformed; the old extent is kept
    """
    if source_id not in SOURCES:
        raise IngestionError(source_id, "unknown source", path=csv_file)

    start = time.perf_counter()
    logger.info(f"Loading bronze extent {source_id} from {csv_file}")
    df = read_extract(source_id, csv_file, SOURCES[source_id].columns)
    store.replace("bronze", source_id, df)
    logger.info(
        f"Loaded {len(df)} records into bronze_{source_id} "
        f"in {time.perf_counter() - start:.2f}s"
    )
    return len(df)


def load_all(store: WarehouseStore, source_dir: str) -> Dict[str, object]:
    """
    Load every configured source from source_dir.

    A failing source is logged and reported but does not stop the others.

    Returns:
        Dictionary with 'loaded' (source -> row count) and
        'failed' (source -> error message)
    """
    loaded, failed = {}, {}
    batch_start = time.perf_counter()
    logger.info("Loading bronze layer")

    for source_id, source in SOURCES.items():
        csv_file = os.path.join(source_dir, source.file)
        try:
            loaded[source_id] = load_source(store, source_id, csv_file)
        except IngestionError as e:
            logger.error(f"Bronze load failed: {e}")
            failed[source_id] = str(e)

    logger.info(
        f"Bronze layer loaded: {len(loaded)} sources ok, {len(failed)} failed "
        f"in {time.perf_counter() - batch_start:.2f}s"
    )
    return {"loaded": loaded, "failed": failed}
