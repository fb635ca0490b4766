from __future__ import annotations
import csv
import io
import logging
from pathlib import Path
from typing import List, Optional, Tuple

import numpy as np
import pandas as pd
import requests

from .errors import FetchError, ParseError
from .metrics import UsageRecord

logger = logging.getLogger(__name__)

REQUIRED_COLUMNS = ["date", "version", "count"]
_INVISIBLE = r"[\u200b\u200e\ufeff]"


def _is_url(source: str) -> bool:
    return source.lower().startswith(("http://", "https://"))

def fetch_csv_text(
    source: str,
    *,
    timeout: float = 30.0,
    session: Optional[requests.Session] = None,
) -> str:
    """
    Single fetch attempt, no retry.
    http(s) sources go through requests; anything else is a local path.
    """
    if _is_url(source):
        http = session or requests
        try:
            resp = http.get(source, timeout=timeout)
        except requests.RequestException as e:
            raise FetchError(f"Network error fetching {source}: {e}") from e
        if not resp.ok:
            raise FetchError(f"HTTP error! status: {resp.status_code}")
        logger.debug("Fetched %d bytes from %s", len(resp.content), source)
        return resp.content.decode("utf-8-sig")

    try:
        return Path(source).read_text(encoding="utf-8-sig")
    except (OSError, UnicodeDecodeError) as e:
        raise FetchError(f"Cannot read {source}: {e}") from e


def _normalize_columns(df: pd.DataFrame) -> pd.DataFrame:
    cols = {str(c).strip().lower(): c for c in df.columns}
    missing = [r for r in REQUIRED_COLUMNS if r not in cols]
    if missing:
        raise ParseError(f"CSV is missing required columns: {missing}. Found: {list(df.columns)}")
    return df.rename(columns={cols[r]: r for r in REQUIRED_COLUMNS})[REQUIRED_COLUMNS].copy()

def _as_date_value(ts: pd.Timestamp):
    # plain calendar dates stay dates; anything with a time part keeps it
    if ts == ts.normalize():
        return ts.date()
    return ts.to_pydatetime()

def _coerce_date(value: str) -> pd.Timestamp:
    try:
        ts = pd.to_datetime(value, utc=True)
    except (ValueError, TypeError, OverflowError):
        return pd.NaT
    if pd.isna(ts):
        return pd.NaT
    return ts.tz_convert(None)

def _parse_dates(values: pd.Series) -> pd.Series:
    """
    Dates as naive UTC timestamps, NaT where unparseable.
    Offsets and "Z" suffixes are converted to UTC so mixed zones can coexist.
    """
    try:
        ts = pd.to_datetime(values, errors="coerce", format="mixed", utc=True)
        return ts.dt.tz_convert(None)
    except (ValueError, TypeError, OverflowError):
        # out-of-range values can still slip past errors="coerce"
        return pd.Series([_coerce_date(v) for v in values], index=values.index, dtype="datetime64[ns]")

def _record_lines(text: str, n_cols: int) -> Tuple[List[int], List[int]]:
    """
    Starting line numbers of the data records read_csv keeps, and of the
    ones it hands to on_bad_lines (more fields than the header).
    Blank lines are skipped the same way read_csv skips them.
    """
    kept, rejected = [], []
    reader = csv.reader(io.StringIO(text))
    header_seen = False
    prev_line = 0
    for row in reader:
        start, prev_line = prev_line + 1, reader.line_num
        if not row or (len(row) == 1 and not row[0].strip()):
            continue
        if not header_seen:
            header_seen = True
            continue
        (rejected if len(row) > n_cols else kept).append(start)
    return kept, rejected

def parse_usage_csv(text: str) -> List[UsageRecord]:
    """
    Parse CSV text into UsageRecords.

    Header row required with date, version, count (case-insensitive).
    Malformed rows are logged with their line number and skipped;
    ParseError only when nothing usable is left after skipping, or the
    header is unusable.
    """
    bad_lines: List[List[str]] = []

    def _on_bad_line(fields: List[str]) -> None:
        bad_lines.append(fields)
        return None

    try:
        raw = pd.read_csv(
            io.StringIO(text),
            dtype=str,
            keep_default_na=False,
            skip_blank_lines=True,
            engine="python",
            on_bad_lines=_on_bad_line,
        )
        kept_lines, rejected_lines = _record_lines(text, len(raw.columns))
    except pd.errors.EmptyDataError as e:
        raise ParseError("CSV has no header row") from e
    except (pd.errors.ParserError, csv.Error) as e:
        raise ParseError(f"CSV could not be parsed: {e}") from e

    def _line(pos: int, lines: List[int]) -> Optional[int]:
        return lines[pos] if pos < len(lines) else None

    for pos, fields in enumerate(bad_lines):
        logger.warning("Skipping line %s: wrong number of fields: %s", _line(pos, rejected_lines), fields)

    df = _normalize_columns(raw).reset_index(drop=True)
    for c in REQUIRED_COLUMNS:
        df[c] = df[c].astype(str).str.replace(_INVISIBLE, "", regex=True).str.strip()

    ts = _parse_dates(df["date"])
    counts = pd.to_numeric(df["count"], errors="coerce").astype("float64")
    ok = (
        ts.notna()
        & (df["version"] != "")
        & counts.notna()
        & np.isfinite(counts)
        & (counts >= 0)
        & (counts < 2.0 ** 63)  # must fit int64
        & (counts == counts.round())
    )

    for i in df.index[~ok]:
        logger.warning(
            "Skipping malformed row at line %s: date=%r version=%r count=%r",
            _line(i, kept_lines), df.at[i, "date"], df.at[i, "version"], df.at[i, "count"],
        )

    records = [
        UsageRecord(date=_as_date_value(ts[i]), category=df.at[i, "version"], count=int(counts[i]))
        for i in df.index[ok]
    ]

    n_bad = len(bad_lines) + int((~ok).sum())
    if n_bad and not records:
        raise ParseError(f"No usable records: all {n_bad} data rows were malformed")
    if n_bad:
        logger.error("CSV parsing errors: skipped %d malformed rows", n_bad)
    logger.info("Parsed %d usage records", len(records))
    return records


def load_usage(
    source: str,
    *,
    timeout: float = 30.0,
    session: Optional[requests.Session] = None,
) -> List[UsageRecord]:
    return parse_usage_csv(fetch_csv_text(source, timeout=timeout, session=session))
