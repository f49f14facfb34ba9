from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Callable, List, Optional

from solis_backfill.exceptions import DeviceListingError
from solis_backfill.models.device import DeviceSeries
from solis_backfill.models.summary import DayRecord

SUCCESS = "success"
EMPTY = "empty"
FAILED = "failed"


@dataclass
class FetchOutcome:
    status: str
    records: List[DayRecord] = field(default_factory=list)
    reason: Optional[str] = None
    attempts: int = 1
    # dated entries whose numbers would not parse; these dates stay open
    unparseable_dates: List[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        """Provider answered; an empty month still counts as answered."""
        return self.status in (SUCCESS, EMPTY)

    @classmethod
    def success(
        cls,
        records: List[DayRecord],
        attempts: int = 1,
        unparseable_dates: Optional[List[str]] = None,
    ) -> "FetchOutcome":
        return cls(
            status=SUCCESS,
            records=list(records),
            attempts=attempts,
            unparseable_dates=list(unparseable_dates or []),
        )

    @classmethod
    def empty(cls, attempts: int = 1) -> "FetchOutcome":
        return cls(status=EMPTY, attempts=attempts)

    @classmethod
    def failed(cls, reason: str, attempts: int = 1) -> "FetchOutcome":
        return cls(status=FAILED, reason=reason, attempts=attempts)


class RequestPacer:
    """Keeps at least ``min_interval`` seconds between successive remote calls."""

    def __init__(
        self,
        min_interval: float = 1.0,
        *,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.min_interval = max(0.0, float(min_interval))
        self._clock = clock
        self._sleep = sleep
        self._last_call: Optional[float] = None

    def wait(self) -> None:
        if self._last_call is not None and self.min_interval > 0:
            remaining = self.min_interval - (self._clock() - self._last_call)
            if remaining > 0:
                self._sleep(remaining)
        self._last_call = self._clock()


class _Retryable(Exception):
    pass


class ResilientFetcher:
    """Bounded, linearly backed-off retries around the provider client.

    Attempt ``n`` that fails is followed by a ``n * backoff_step`` second
    pause, up to ``max_retries`` retries. Month fetches never raise; they
    report a ``FetchOutcome`` so one bad month cannot stop a run. Without an
    explicit ``pacer``, calls are spaced ``min_interval`` seconds apart.
    """

    def __init__(
        self,
        client,
        log,
        *,
        max_retries: int = 2,
        backoff_step: float = 1.5,
        currency: Optional[str] = None,
        min_interval: float = 1.0,
        pacer: Optional[RequestPacer] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.client = client
        self.log = log
        self.max_retries = max(0, int(max_retries))
        self.backoff_step = float(backoff_step)
        self.currency = currency
        self.pacer = pacer or RequestPacer(min_interval, sleep=sleep)
        self._sleep = sleep

    # ------------------------------------------------------------------
    def _call_with_retry(self, description: str, call: Callable[[], object]):
        """Run ``call`` until it returns or attempts run out.

        Returns ``(result, attempts, last_reason)``; ``result`` is None when
        every attempt failed.
        """
        total_attempts = self.max_retries + 1
        reason = "no attempt made"
        for attempt in range(1, total_attempts + 1):
            self.pacer.wait()
            try:
                return call(), attempt, None
            except _Retryable as exc:
                reason = str(exc)
            except Exception as exc:  # transport errors and anything the client raises
                reason = f"{type(exc).__name__}: {exc}"

            if attempt < total_attempts:
                delay = attempt * self.backoff_step
                self.log.warning(
                    "%s failed (attempt %d/%d): %s; retrying in %.1fs",
                    description,
                    attempt,
                    total_attempts,
                    reason,
                    delay,
                )
                self._sleep(delay)
            else:
                self.log.warning(
                    "%s failed (attempt %d/%d): %s; giving up",
                    description,
                    attempt,
                    total_attempts,
                    reason,
                )
        return None, total_attempts, reason

    # ------------------------------------------------------------------
    def fetch_month(self, device_id: str, month_key: str) -> FetchOutcome:
        def _call():
            resp = self.client.fetch_month(device_id, month_key, self.currency)
            if not resp.success:
                raise _Retryable(f"provider rejected request (code={resp.code}): {resp.message or 'no message'}")
            return resp

        resp, attempts, reason = self._call_with_retry(f"Month {month_key} for {device_id}", _call)
        if resp is None:
            return FetchOutcome.failed(reason, attempts=attempts)

        data = resp.data
        if data is None or data == []:
            return FetchOutcome.empty(attempts=attempts)
        if not isinstance(data, list):
            self.log.warning(
                "Month %s for %s: malformed response (data is %s, expected list)",
                month_key,
                device_id,
                type(data).__name__,
            )
            return FetchOutcome.failed("malformed response", attempts=attempts)

        records: List[DayRecord] = []
        unparseable: List[str] = []
        for entry in data:
            record = DayRecord.from_payload(entry)
            if record is not None:
                records.append(record)
                continue
            label = DayRecord.label_of(entry)
            if label is None:
                self.log.debug("Month %s for %s: dropping undated entry %r", month_key, device_id, entry)
                continue
            self.log.warning(
                "Month %s for %s: entry for %s has unparseable values %r; leaving date open",
                month_key,
                device_id,
                label,
                entry,
            )
            unparseable.append(label)
        return FetchOutcome.success(records, attempts=attempts, unparseable_dates=unparseable)

    # ------------------------------------------------------------------
    def list_devices(self) -> List[DeviceSeries]:
        devices, attempts, reason = self._call_with_retry("Inverter listing", self.client.list_devices)
        if devices is None:
            raise DeviceListingError(f"Could not list inverters after {attempts} attempt(s): {reason}")
        return list(devices)
