"""
Column-level cleansing rules used by the silver layer.

Every rule is a pure function over pandas objects and never raises on bad
values: anything it cannot resolve becomes a null or the unknown label.
"""
from typing import Mapping, Optional, Tuple

import numpy as np
import pandas as pd


UNKNOWN = "n/a"

# row position inside an extract, used as the final tie-break when ranking
_POSITION = "__position"


def _text(series: pd.Series, func=None) -> pd.Series:
    """Object Series holding func(value) for text values and None for everything else."""
    return pd.Series(
        [(func(v) if func else v) if isinstance(v, str) else None for v in series],
        index=series.index,
        dtype=object,
    )


def trim(series: pd.Series) -> pd.Series:
    """Strip leading and trailing whitespace from text values; nulls stay null."""
    return _text(series, str.strip)


def standardize(series: pd.Series, mapping: Mapping[str, str], unknown: str = UNKNOWN) -> pd.Series:
    """
    Map raw codes to canonical labels.

    Codes are compared trimmed and upper-cased, so mapping keys must be upper
    case. Nulls, blanks and unrecognized codes all map to `unknown`.
    """
    def lookup(value):
        if not isinstance(value, str):
            return unknown
        return mapping.get(value.strip().upper(), unknown)

    return series.astype(object).map(lookup)


def default_zero(series: pd.Series) -> pd.Series:
    """Replace missing numerics with 0."""
    return pd.to_numeric(series, errors="coerce").fillna(0)


def split_composite_key(
    series: pd.Series,
    prefix_length: int = 5,
    separator: str = "-",
    replacement: str = "_",
) -> Tuple[pd.Series, pd.Series]:
    """
    Split a compound key such as 'CO-RF-FR-R92B-58' into its parent key and
    its own key.

    The prefix is the first `prefix_length` characters with `separator`
    replaced by `replacement` ('CO_RF'); the suffix is everything after the
    prefix and the separator that follows it ('FR-R92B-58').
    """
    values = trim(series)
    prefix = _text(values, lambda v: v[:prefix_length].replace(separator, replacement))
    suffix = _text(values, lambda v: v[prefix_length + 1:])
    return prefix, suffix


def strip_prefix(series: pd.Series, prefix: str) -> pd.Series:
    """Remove a leading marker such as 'NAS' from identifiers."""
    return _text(trim(series), lambda v: v[len(prefix):] if v.startswith(prefix) else v)


def remove_character(series: pd.Series, character: str) -> pd.Series:
    return _text(trim(series), lambda v: v.replace(character, ""))


def derive_end_dates(
    df: pd.DataFrame,
    key: str,
    start: str,
    unit: pd.Timedelta = pd.Timedelta(days=1),
) -> pd.Series:
    """
    Derive the end of each version's validity interval.

    Versions are grouped by `key` and ordered by `start` (ties keep input
    order). Each version ends one `unit` before the next version starts; the
    newest version per key stays open (NaT). A version without a start date
    ranks as the oldest, so it is closed by the first dated version instead
    of leaving its predecessor open.

    Returns:
        Series of end timestamps aligned with df's index
    """
    if df.empty:
        return pd.Series(pd.NaT, index=df.index, dtype="datetime64[ns]")

    frame = pd.DataFrame({
        key: df[key],
        start: pd.to_datetime(df[start], errors="coerce"),
        _POSITION: np.arange(len(df)),
    }, index=df.index)
    ordered = frame.sort_values([key, start, _POSITION], kind="mergesort", na_position="first")
    next_start = ordered.groupby(key, sort=False, dropna=False)[start].shift(-1)
    end = next_start - unit
    return end.reindex(df.index)


def naive_timestamp(moment) -> pd.Timestamp:
    """Timestamp without a timezone; aware values are converted to UTC first."""
    ts = pd.Timestamp(moment)
    if ts.tzinfo is not None:
        ts = ts.tz_convert("UTC").tz_localize(None)
    return ts


def null_future_dates(series: pd.Series, as_of: pd.Timestamp) -> pd.Series:
    """Null out dates strictly later than the processing time."""
    dates = pd.to_datetime(series, errors="coerce")
    return dates.where(dates <= naive_timestamp(as_of))


def parse_int_dates(series: pd.Series) -> pd.Series:
    """
    Parse dates encoded as YYYYMMDD integers.

    Only non-zero values with exactly 8 digits are parsed; everything else,
    including impossible calendar dates, becomes NaT.
    """
    def to_text(value) -> Optional[str]:
        if value is None or pd.isna(value):
            return None
        try:
            number = int(value)
        except (TypeError, ValueError):
            return None
        text = str(number)
        if number <= 0 or len(text) != 8:
            return None
        return text

    texts = series.astype(object).map(to_text)
    return pd.to_datetime(texts, format="%Y%m%d", errors="coerce")


def recompute_measure(
    quantity: pd.Series,
    price: pd.Series,
    measure: pd.Series,
) -> Tuple[pd.Series, pd.Series]:
    """
    Make measure == quantity * price hold wherever it can be recovered.

    A measure that is null, non-positive or disagrees with quantity * |price|
    is recomputed as quantity * |price|; a null or zero price gives no basis
    for that, so a positive measure is kept as it is. A price that is null or
    non-positive is then back-derived as measure / quantity; a zero or null
    quantity leaves it null.

    Returns:
        (measure, price) as float Series
    """
    qty = pd.to_numeric(quantity, errors="coerce").astype("float64")
    prc = pd.to_numeric(price, errors="coerce").astype("float64")
    msr = pd.to_numeric(measure, errors="coerce").astype("float64")

    expected = qty * prc.abs().where(prc != 0)
    bad_measure = msr.isna() | (msr <= 0) | (expected.notna() & ~np.isclose(msr, expected))
    new_measure = msr.where(~bad_measure, expected)

    bad_price = prc.isna() | (prc <= 0)
    safe_qty = qty.where(qty != 0)
    new_price = prc.where(~bad_price, new_measure / safe_qty)

    return new_measure, new_price


def latest_per_key(df: pd.DataFrame, key: str, order_by: str) -> pd.DataFrame:
    """
    Keep one row per natural key: the one with the latest `order_by` value.

    Rows without a key are dropped. Null timestamps rank below any real one;
    among equal timestamps the row appearing later in the input wins. The
    surviving rows keep their input order.
    """
    frame = df[df[key].notna()].copy()
    frame[_POSITION] = np.arange(len(frame))
    frame["__order"] = pd.to_datetime(frame[order_by], errors="coerce")
    ranked = frame.sort_values(
        ["__order", _POSITION], ascending=[False, False], kind="mergesort", na_position="last"
    )
    winners = ranked.drop_duplicates(subset=[key], keep="first")
    return winners.sort_values(_POSITION).drop(columns=[_POSITION, "__order"]).reset_index(drop=True)
