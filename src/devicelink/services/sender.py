from __future__ import annotations

import asyncio
import contextlib
import logging
import time
from typing import Callable, Iterable, Protocol, Sequence

from devicelink.errors import CredentialNotFoundError, StoreUnavailableError
from devicelink.services.envelope.codec import PayloadCodec
from devicelink.services.envelope.models import DeviceCredential, SensorReading, SignedToken, TimestampUnit
from devicelink.services.envelope.signer import sign
from devicelink.services.envelope.simulator import SensorSimulator
from devicelink.services.rotation import CycleOutcome, SecretRenewer, SecretRotationClient
from devicelink.services.telemetry import SendTelemetry
from devicelink.services.transport.results import Transport

__all__ = ["CredentialSource", "DevicePublisher", "ContinuousSender"]

_log = logging.getLogger("devicelink.sender")


class CredentialSource(Protocol):
    async def fetch_credential(self, device_id: str) -> DeviceCredential:
        ...


class DevicePublisher:
    """Runs one store -> encode -> sign -> deliver cycle per call.

    The credential is read fresh on every cycle and only flows through
    arguments; nothing about a device is cached between cycles.
    """

    def __init__(
        self,
        *,
        store: CredentialSource,
        codec: PayloadCodec,
        renewer: SecretRenewer,
        timestamp_unit: TimestampUnit | str,
        simulator: SensorSimulator | None = None,
        telemetry: SendTelemetry | None = None,
        clock: Callable[[], float] = time.time,
        iat_offset: int = 0,
    ) -> None:
        self.store = store
        self.codec = codec
        self.rotation = SecretRotationClient(renewer)
        self.timestamp_unit = TimestampUnit(timestamp_unit)
        self.simulator = simulator or SensorSimulator()
        self.telemetry = telemetry or SendTelemetry()
        self._clock = clock
        self.iat_offset = iat_offset

    def next_reading(self) -> SensorReading:
        return self.simulator.next_reading(self.timestamp_unit, epoch_seconds=self._clock())

    def build_token(self, credential: DeviceCredential, reading: SensorReading) -> SignedToken:
        envelope = self.codec.encode(reading, credential.current_secret)
        return sign(
            envelope,
            credential.device_id,
            credential.current_secret,
            clock=self._clock,
            iat_offset=self.iat_offset,
        )

    async def send_cycle(
        self,
        device_id: str,
        transport: Transport,
        reading: SensorReading | None = None,
    ) -> CycleOutcome:
        """Deliver ``reading`` (or a simulated one) for ``device_id``.

        Store errors and codec/signer errors propagate; delivery problems are
        reported through the returned outcome.
        """
        credential = await self.store.fetch_credential(device_id)
        if reading is None:
            reading = self.next_reading()

        outcome = await self.rotation.deliver(
            credential,
            build_token=lambda cred: self.build_token(cred, reading),
            deliver=transport.send,
        )
        result = outcome.result
        self.telemetry.record_delivery(
            transport.name,
            outcome.ok,
            device_id=device_id,
            status=result.status.value if result else None,
            status_code=result.status_code if result else None,
            reason=outcome.reason.value if outcome.reason else None,
            attempts=outcome.attempts,
            renewed=outcome.renewed,
            detail=result.describe() if result else None,
        )
        return outcome


class ContinuousSender:
    """Fixed-interval loop over devices and transports.

    Cycles run strictly one after another: a slow cycle delays the next
    tick instead of overlapping it. :meth:`stop` lets the in-flight tick
    finish, after which every transport is closed.
    """

    def __init__(
        self,
        publisher: DevicePublisher,
        transports: Sequence[Transport],
        device_ids: Iterable[str],
        *,
        interval: float,
        max_cycles: int | None = None,
    ) -> None:
        if interval <= 0:
            raise ValueError("interval must be positive")
        self.publisher = publisher
        self.transports = list(transports)
        self.device_ids = list(device_ids)
        self.interval = float(interval)
        self.max_cycles = max_cycles
        self.cycles = 0
        self._stop = asyncio.Event()

    @property
    def telemetry(self) -> SendTelemetry:
        return self.publisher.telemetry

    @property
    def stopping(self) -> bool:
        return self._stop.is_set()

    def stop(self) -> None:
        if not self._stop.is_set():
            _log.info("stop requested, finishing current cycle")
        self._stop.set()

    async def _tick(self) -> None:
        for device_id in self.device_ids:
            reading = self.publisher.next_reading()
            for transport in self.transports:
                try:
                    await self.publisher.send_cycle(device_id, transport, reading)
                except (CredentialNotFoundError, StoreUnavailableError) as exc:
                    _log.warning("cycle for %s over %s skipped: %s", device_id, transport.name, exc)
                    self.telemetry.record_delivery(
                        transport.name,
                        False,
                        device_id=device_id,
                        reason="store_error",
                        detail=str(exc),
                    )

    async def _wait(self, seconds: float) -> None:
        if seconds <= 0:
            return
        with contextlib.suppress(asyncio.TimeoutError):
            await asyncio.wait_for(self._stop.wait(), timeout=seconds)

    async def run(self) -> SendTelemetry:
        loop = asyncio.get_running_loop()
        _log.info(
            "continuous sender started devices=%s transports=%s interval=%ss",
            ",".join(self.device_ids),
            ",".join(t.name for t in self.transports),
            self.interval,
        )
        try:
            while not self._stop.is_set():
                started = loop.time()
                await self._tick()
                self.cycles += 1
                if self.max_cycles is not None and self.cycles >= self.max_cycles:
                    break
                await self._wait(self.interval - (loop.time() - started))
        finally:
            await self._close_transports()
            _log.info("continuous sender stopped after %s cycles", self.cycles)
        return self.telemetry

    async def _close_transports(self) -> None:
        for transport in self.transports:
            await transport.aclose()
