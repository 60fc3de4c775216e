"""Local CSV price provider."""

from __future__ import annotations

from pathlib import Path

import pandas as pd

from stratbacktest.core.data.base import DataProvider
from stratbacktest.core.data.frames import normalize_ohlcv_frame, slice_inclusive, to_utc_timestamp
from stratbacktest.core.utils.errors import DataSourceError, InsufficientDataError
from stratbacktest.core.utils.logging import get_logger

_LOGGER_NAME = "stratbacktest.core.data.csv_provider"


class CsvProvider(DataProvider):
    """Read ``<csv_dir>/<TICKER>.csv`` files with a ``date`` column and OHLCV columns."""

    name = "csv"

    def __init__(self, csv_dir: Path) -> None:
        self.csv_dir = csv_dir.expanduser().resolve()

    def csv_path(self, ticker: str) -> Path:
        return self.csv_dir / f"{ticker.strip().upper()}.csv"

    def fetch_ohlcv(self, ticker: str, start: str, end: str) -> pd.DataFrame:
        path = self.csv_path(ticker)
        if not path.is_file():
            raise DataSourceError(f"No CSV price file for ticker '{ticker}' at {path}.")

        try:
            raw = pd.read_csv(path)
        except (OSError, ValueError) as exc:
            raise DataSourceError(f"Failed to read CSV prices for '{ticker}' at {path}: {exc}") from exc

        raw.columns = [str(column).strip().lower() for column in raw.columns]
        if "date" not in raw.columns:
            raise DataSourceError(f"CSV price file {path} has no 'date' column.")

        _check_date_order(raw, ticker, path)
        normalized = normalize_ohlcv_frame(raw)
        return slice_inclusive(normalized, to_utc_timestamp(start), to_utc_timestamp(end))


def _check_date_order(raw: pd.DataFrame, ticker: str, path: Path) -> None:
    """
    Reject conflicting rows for one date and warn about out-of-order rows.

    Exact duplicate rows are tolerated.

    Raises:
        InsufficientDataError: If two rows share a date but disagree on values.
    """
    dates = pd.to_datetime(raw["date"], utc=True, errors="coerce")
    stamped = raw.assign(date=dates).dropna(subset=["date"]).drop_duplicates()
    conflicts = stamped.loc[stamped["date"].duplicated(), "date"]
    if not conflicts.empty:
        raise InsufficientDataError(
            f"CSV price file {path} has conflicting rows for {conflicts.iloc[0].date().isoformat()}."
        )
    if not stamped["date"].is_monotonic_increasing:
        get_logger(_LOGGER_NAME).warning("%s: rows in %s are out of date order, sorting by date", ticker, path)
