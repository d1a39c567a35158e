from __future__ import annotations

import random

import pytest

from devicelink.errors import CredentialNotFoundError, SecretKeyError, StoreUnavailableError
from devicelink.services.envelope.codec import AesCbcCodec
from devicelink.services.envelope.models import DeviceCredential, SignedToken, TimestampUnit
from devicelink.services.envelope.signer import verify_token
from devicelink.services.envelope.simulator import SensorSimulator
from devicelink.services.rotation import CycleState
from devicelink.services.sender import ContinuousSender, DevicePublisher
from devicelink.services.telemetry import SendTelemetry
from devicelink.services.transport.results import DeliveryResult

SECRET = "8358a7b6add3b33daf060be8345f0af4"
NOW = 1_700_000_000.0


class MemoryStore:
    def __init__(self, credentials: dict[str, DeviceCredential], *, fail: bool = False) -> None:
        self.credentials = credentials
        self.fail = fail
        self.reads = 0

    async def fetch_credential(self, device_id: str) -> DeviceCredential:
        self.reads += 1
        if self.fail:
            raise StoreUnavailableError("database is locked")
        try:
            return self.credentials[device_id]
        except KeyError:
            raise CredentialNotFoundError(device_id) from None


class NoRenewal:
    async def renew_secret(self, device_id: str, old_secret: str) -> str:
        raise AssertionError("renewal not expected")


class RecordingTransport:
    def __init__(self, name: str, *, ok: bool = True) -> None:
        self.name = name
        self.ok = ok
        self.tokens: list[SignedToken] = []
        self.closed = False
        self.on_send = None

    async def send(self, token: SignedToken) -> DeliveryResult:
        self.tokens.append(token)
        if self.on_send is not None:
            self.on_send()
        if self.ok:
            return DeliveryResult.success(self.name)
        return DeliveryResult.rejected(self.name, status_code=500, body="error")

    async def aclose(self) -> None:
        self.closed = True


def _publisher(store, events=None) -> DevicePublisher:
    sinks = [lambda event, payload: events.append((event, dict(payload)))] if events is not None else []
    return DevicePublisher(
        store=store,
        codec=AesCbcCodec(),
        renewer=NoRenewal(),
        timestamp_unit=TimestampUnit.SECONDS,
        simulator=SensorSimulator(rng=random.Random(7)),
        telemetry=SendTelemetry(*sinks),
        clock=lambda: NOW,
    )


@pytest.mark.anyio
async def test_send_cycle_encodes_signs_and_delivers():
    events: list = []
    store = MemoryStore({"dev-1": DeviceCredential("dev-1", SECRET)})
    transport = RecordingTransport("http")
    outcome = await _publisher(store, events).send_cycle("dev-1", transport)

    assert outcome.state is CycleState.DONE
    token = verify_token(transport.tokens[0], SECRET, clock=lambda: NOW)
    assert token.claims["sub"] == "dev-1"
    assert token.claims["iat"] == int(NOW)
    reading = AesCbcCodec().decode(token.claims["data"], SECRET)
    assert reading.timestamp == int(NOW)
    assert set(reading.channels) == {"V0", "V1", "V2", "V3", "V4", "V5"}
    assert events[0][0] == "delivery"
    assert events[0][1]["ok"] is True
    assert events[0][1]["device_id"] == "dev-1"


@pytest.mark.anyio
async def test_send_cycle_propagates_store_errors():
    publisher = _publisher(MemoryStore({}))
    with pytest.raises(CredentialNotFoundError):
        await publisher.send_cycle("ghost", RecordingTransport("http"))


@pytest.mark.anyio
async def test_continuous_sender_runs_bounded_cycles_and_closes_transports():
    store = MemoryStore({"dev-1": DeviceCredential("dev-1", SECRET)})
    http, mqtt = RecordingTransport("http"), RecordingTransport("mqtt", ok=False)
    sender = ContinuousSender(_publisher(store), [http, mqtt], ["dev-1"], interval=0.01, max_cycles=3)

    telemetry = await sender.run()

    assert sender.cycles == 3
    assert store.reads == 6
    assert telemetry.stats("http").successes == 3
    assert telemetry.stats("mqtt").failures == 3
    assert telemetry.stats("mqtt").success_rate == 0
    assert http.closed and mqtt.closed
    # one reading per tick is shared by both transports
    http_data = [AesCbcCodec().decode(t.claims["data"], SECRET) for t in http.tokens]
    mqtt_data = [AesCbcCodec().decode(t.claims["data"], SECRET) for t in mqtt.tokens]
    assert http_data == mqtt_data


@pytest.mark.anyio
async def test_stop_lets_current_cycle_finish():
    store = MemoryStore({"dev-1": DeviceCredential("dev-1", SECRET)})
    http, mqtt = RecordingTransport("http"), RecordingTransport("mqtt")
    sender = ContinuousSender(_publisher(store), [http, mqtt], ["dev-1"], interval=60)
    http.on_send = sender.stop

    await sender.run()

    assert sender.cycles == 1
    assert len(http.tokens) == 1
    assert len(mqtt.tokens) == 1
    assert mqtt.closed


@pytest.mark.anyio
async def test_store_errors_are_counted_and_run_continues():
    store = MemoryStore({}, fail=True)
    http = RecordingTransport("http")
    sender = ContinuousSender(_publisher(store), [http], ["dev-1"], interval=0.01, max_cycles=2)

    telemetry = await sender.run()

    assert sender.cycles == 2
    assert telemetry.stats("http").attempts == 2
    assert telemetry.stats("http").successes == 0
    assert telemetry.stats("http").failures == 2


@pytest.mark.anyio
async def test_key_errors_abort_the_run():
    store = MemoryStore({"dev-1": DeviceCredential("dev-1", "abcd")})
    http = RecordingTransport("http")
    sender = ContinuousSender(_publisher(store), [http], ["dev-1"], interval=0.01, max_cycles=5)

    with pytest.raises(SecretKeyError):
        await sender.run()
    assert http.closed
    assert http.tokens == []
