"""EOD Historical Data price provider."""

from __future__ import annotations

import os
import time
from typing import Any

import pandas as pd
import requests

from stratbacktest.core.data.base import DataProvider
from stratbacktest.core.data.frames import empty_ohlcv_frame, normalize_ohlcv_frame
from stratbacktest.core.utils.errors import DataSourceError
from stratbacktest.core.utils.logging import get_logger

REQUIRED_FIELDS: tuple[str, ...] = ("date", "open", "high", "low", "close")
RETRYABLE_STATUS_CODES: frozenset[int] = frozenset({429, 500, 502, 503, 504})
_LOGGER_NAME = "stratbacktest.core.data.eodhd_provider"


class EODHDProvider(DataProvider):
    """REST client for EOD Historical Data daily bars."""

    name = "eodhd"

    def __init__(
        self,
        api_key: str | None = None,
        base_url: str = "https://eodhd.com/api",
        session: requests.Session | None = None,
        timeout_seconds: float = 30.0,
        max_retries: int = 3,
        retry_backoff_seconds: float = 0.5,
    ) -> None:
        """
        Initialize an EODHD provider.

        Args:
            api_key: API token. If omitted, reads from ``EODHD_API_KEY``.
            base_url: Base URL for the EODHD REST API.
            session: Optional requests session for dependency injection.
            timeout_seconds: Request timeout in seconds.
            max_retries: Number of retry attempts for transient failures.
            retry_backoff_seconds: Base seconds for exponential retry backoff.

        Raises:
            DataSourceError: If no API key is available.
            ValueError: If retry settings are negative.
        """
        resolved_api_key = api_key or os.getenv("EODHD_API_KEY")
        if not resolved_api_key:
            raise DataSourceError(
                "EODHD API key is required. Set EODHD_API_KEY or pass api_key explicitly."
            )
        if max_retries < 0:
            raise ValueError("max_retries must be >= 0.")
        if retry_backoff_seconds < 0:
            raise ValueError("retry_backoff_seconds must be >= 0.")

        self._api_key = resolved_api_key
        self._base_url = base_url.rstrip("/")
        self._session = session or requests.Session()
        self._timeout_seconds = timeout_seconds
        self._max_retries = max_retries
        self._retry_backoff_seconds = retry_backoff_seconds

    def _sleep_before_retry(self, attempt: int) -> None:
        if self._retry_backoff_seconds == 0:
            return
        time.sleep(self._retry_backoff_seconds * (2**attempt))

    def _request_payload(self, endpoint: str, params: dict[str, str], ticker: str) -> Any:
        """Request the raw JSON payload, retrying transient failures with backoff."""
        logger = get_logger(_LOGGER_NAME)
        last_exception: Exception | None = None
        for attempt in range(self._max_retries + 1):
            try:
                response = self._session.get(endpoint, params=params, timeout=self._timeout_seconds)
                if response.status_code in RETRYABLE_STATUS_CODES and attempt < self._max_retries:
                    logger.warning(
                        "EODHD returned %s for %s, retrying (attempt %d)",
                        response.status_code,
                        ticker,
                        attempt + 1,
                    )
                    self._sleep_before_retry(attempt)
                    continue

                response.raise_for_status()
                return response.json()
            except requests.exceptions.RequestException as exc:
                last_exception = exc
                if attempt >= self._max_retries:
                    break
                self._sleep_before_retry(attempt)
            except ValueError as exc:
                raise DataSourceError(f"Invalid JSON response for ticker '{ticker}'.") from exc

        raise DataSourceError(f"Failed to fetch data for ticker '{ticker}': {last_exception}")

    def _payload_to_frame(self, payload: Any, ticker: str) -> pd.DataFrame:
        """Validate the vendor payload schema and OHLC integrity."""
        if isinstance(payload, dict):
            message = payload.get("message") or payload.get("error") or str(payload)
            raise DataSourceError(f"EODHD error for ticker '{ticker}': {message}")
        if not isinstance(payload, list):
            raise DataSourceError(f"Unexpected EODHD response type for ticker '{ticker}'.")
        if not payload:
            return empty_ohlcv_frame()

        frame = pd.DataFrame(payload)
        missing = [column for column in REQUIRED_FIELDS if column not in frame.columns]
        if missing:
            raise DataSourceError(
                f"EODHD payload is missing required fields for ticker '{ticker}': {missing}"
            )

        normalized = normalize_ohlcv_frame(frame)
        integrity_mask = (
            (normalized["high"] >= normalized["low"])
            & (normalized["high"] >= normalized["open"])
            & (normalized["high"] >= normalized["close"])
            & (normalized["low"] <= normalized["open"])
            & (normalized["low"] <= normalized["close"])
            & (normalized["low"] > 0.0)
            & (normalized["volume"] >= 0.0)
        )
        valid = normalized.loc[integrity_mask]
        if valid.empty:
            raise DataSourceError(
                f"EODHD payload failed OHLCV integrity checks for ticker '{ticker}'."
            )
        return valid

    def fetch_ohlcv(self, ticker: str, start: str, end: str) -> pd.DataFrame:
        """Fetch daily OHLCV bars for a ticker from EODHD."""
        endpoint = f"{self._base_url}/eod/{ticker}"
        params = {
            "api_token": self._api_key,
            "from": start,
            "to": end,
            "period": "d",
            "order": "a",
            "fmt": "json",
        }
        payload = self._request_payload(endpoint=endpoint, params=params, ticker=ticker)
        return self._payload_to_frame(payload=payload, ticker=ticker)
