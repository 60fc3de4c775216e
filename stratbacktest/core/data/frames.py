"""Shared OHLCV dataframe normalization for providers and the cache."""

from __future__ import annotations

import pandas as pd

from stratbacktest.core.data.series import OHLCV_COLUMNS, PRICE_COLUMNS


def empty_ohlcv_frame() -> pd.DataFrame:
    """Create an empty OHLCV dataframe with a UTC datetime index."""
    empty_index = pd.DatetimeIndex([], tz="UTC", name="date")
    return pd.DataFrame(columns=list(OHLCV_COLUMNS), index=empty_index, dtype=float)


def to_utc_timestamp(date_str: str) -> pd.Timestamp:
    """Convert a ``YYYY-MM-DD`` string to a UTC midnight timestamp."""
    timestamp = pd.to_datetime(date_str, utc=True, errors="raise")
    if isinstance(timestamp, pd.DatetimeIndex):
        if timestamp.empty:
            raise ValueError("Date conversion failed for empty date input.")
        return timestamp[0]
    return timestamp


def normalize_ohlcv_frame(frame: pd.DataFrame) -> pd.DataFrame:
    """
    Normalize raw OHLCV data to a sorted, de-duplicated UTC-indexed float frame.

    Rows with missing prices are dropped, missing volume becomes ``0.0`` and
    duplicate dates keep the last observation.
    """
    if frame.empty:
        return empty_ohlcv_frame()

    normalized = frame.copy()
    if "date" in normalized.columns:
        normalized["date"] = pd.to_datetime(normalized["date"], utc=True, errors="coerce")
        normalized = normalized.set_index("date")
    elif isinstance(normalized.index, pd.DatetimeIndex):
        normalized.index = pd.to_datetime(normalized.index, utc=True, errors="coerce")
    else:
        raise ValueError("OHLCV dataframe must have a DatetimeIndex or a 'date' column.")

    normalized = normalized.loc[~normalized.index.isna()]
    normalized.index.name = "date"

    for column in OHLCV_COLUMNS:
        if column not in normalized.columns:
            normalized[column] = pd.NA
        normalized[column] = pd.to_numeric(normalized[column], errors="coerce")

    normalized = normalized.dropna(subset=list(PRICE_COLUMNS))
    normalized["volume"] = normalized["volume"].fillna(0.0)
    normalized = normalized.loc[:, list(OHLCV_COLUMNS)].astype(float).sort_index()
    normalized = normalized.loc[~normalized.index.duplicated(keep="last")]

    if normalized.empty:
        return empty_ohlcv_frame()
    return normalized


def slice_inclusive(frame: pd.DataFrame, start: pd.Timestamp, end: pd.Timestamp) -> pd.DataFrame:
    """Return rows whose index lies in ``[start, end]``."""
    in_range = frame.loc[(frame.index >= start) & (frame.index <= end)]
    if in_range.empty:
        return empty_ohlcv_frame()
    return in_range
