import asyncio
import json

import pytest

from camilla_eq.client.config import ClientConfig
from camilla_eq.client.correlator import DspEvent
from camilla_eq.client.dsp_client import DspClient
from camilla_eq.client.errors import DspCommandError, DspConfigError, DspConnectionError, DspTimeoutError
from camilla_eq.client._tests._helpers import FakeDspServer


def _settings(control: FakeDspServer, spectrum_port: int, **overrides) -> ClientConfig:
    values = dict(
        host="127.0.0.1",
        control_port=control.port,
        spectrum_port=spectrum_port,
        control_timeout_ms=1000,
        spectrum_timeout_ms=1000,
        open_timeout_s=1.0,
    )
    values.update(overrides)
    return ClientConfig(**values)


async def _dead_port() -> int:
    server = await FakeDspServer().start()
    port = server.port
    await server.stop()
    return port


def test_connect_downloads_and_normalizes_config() -> None:
    async def runner() -> None:
        async with FakeDspServer() as control, FakeDspServer() as spectrum:
            client = DspClient(_settings(control, spectrum.port))
            try:
                config = await client.connect()
                assert client.connected and client.spectrum_connected
                assert control.names() == ["GetConfigJson"]
                assert config["processors"] == {}
                assert config["mixers"] == {}
                assert config["devices"]["samplerate"] == 48000
                assert [step["names"] for step in config["pipeline"]] == [["Bass", "Treble"], ["Bass"]]
                assert client.config is config
            finally:
                await client.disconnect()
            assert not client.connected

    asyncio.run(runner())


def test_spectrum_failure_is_tolerated() -> None:
    async def runner() -> None:
        async with FakeDspServer() as control:
            client = DspClient(_settings(control, await _dead_port()))
            try:
                await client.connect()
                assert client.connected
                assert not client.spectrum_connected
                assert await client.get_state() == "Running"
            finally:
                await client.disconnect()

    asyncio.run(runner())


def test_control_failure_raises() -> None:
    async def runner() -> None:
        dead = await _dead_port()
        client = DspClient(ClientConfig(host="127.0.0.1", control_port=dead, spectrum_port=dead, open_timeout_s=1.0))
        with pytest.raises(DspConnectionError):
            await client.connect()
        assert not client.connected

    asyncio.run(runner())


def test_connect_without_host_raises() -> None:
    async def runner() -> None:
        client = DspClient(ClientConfig())
        with pytest.raises(DspConnectionError, match="No server specified"):
            await client.connect()

    asyncio.run(runner())


def test_stalled_reply_times_out_before_next_command_is_written() -> None:
    async def runner() -> None:
        async with FakeDspServer() as control:
            client = DspClient(_settings(control, await _dead_port(), control_timeout_ms=100))
            try:
                await client.connect()
                control.stall("GetState")
                first = asyncio.ensure_future(client.get_state())
                second = asyncio.ensure_future(client.get_volume())

                with pytest.raises(DspTimeoutError):
                    await first
                assert await second == -10.0

                frames = {frame.name: frame for frame in control.received}
                assert control.names() == ["GetConfigJson", "GetState", "GetVolume"]
                assert frames["GetVolume"].at >= frames["GetState"].at + 0.05

                # the late GetState reply has no owner and must be discarded
                control.release("GetState")
                await asyncio.sleep(0.05)
                assert await client.get_state() == "Running"
            finally:
                await client.disconnect()

    asyncio.run(runner())


def test_upload_validates_references_before_sending() -> None:
    async def runner() -> None:
        async with FakeDspServer() as control:
            client = DspClient(_settings(control, await _dead_port()))
            try:
                config = await client.connect()
                config["pipeline"].append({"type": "Filter", "channels": [0], "names": ["Missing"]})
                with pytest.raises(DspConfigError) as excinfo:
                    await client.upload_config(config)
                assert excinfo.value.problems == ['Filter "Missing" not found in config.filters (step 2)']
                assert "SetConfigJson" not in control.names()
            finally:
                await client.disconnect()

    asyncio.run(runner())


def test_upload_sends_serialized_document_and_redownloads() -> None:
    async def runner() -> None:
        async with FakeDspServer() as control:
            client = DspClient(_settings(control, await _dead_port()))
            try:
                config = await client.connect()
                config["pipeline"][1]["names"] = ["Bass", "Treble"]
                accepted = await client.upload_config(config)

                assert control.names() == ["GetConfigJson", "SetConfigJson", "GetConfigJson"]
                sent = control.received[1].payload
                assert isinstance(sent, str)
                assert json.loads(sent)["pipeline"][1]["names"] == ["Bass", "Treble"]
                assert accepted["pipeline"][1]["names"] == ["Bass", "Treble"]
                assert client.config == accepted
            finally:
                await client.disconnect()

    asyncio.run(runner())


def test_typed_wrappers_and_observers() -> None:
    successes: list[DspEvent] = []
    failures: list[DspEvent] = []

    async def runner() -> None:
        async with FakeDspServer() as control, FakeDspServer() as spectrum:
            control.reply_ok("GetAvailableCaptureDevices", [["hw:0", "Built-in"], ["hw:1", None]])
            control.reply_error("Reload", {"result": "Error", "value": "no config file"})
            spectrum.reply_ok("GetConfigTitle", "Living room")
            client = DspClient(_settings(control, spectrum.port))
            client.on_dsp_success = successes.append
            client.on_dsp_failure = failures.append
            try:
                await client.connect()
                await client.set_volume(-3.5)
                assert await client.get_volume() == -3.5
                assert await client.get_version() == "3.0.0"
                assert await client.get_available_capture_devices("Alsa") == [("hw:0", "Built-in"), ("hw:1", None)]
                assert control.received[-1].payload == "Alsa"
                assert await client.get_spectrum_data() == [-12.5, -14.0]
                assert await client.get_config_title("spectrum") == "Living room"
                assert spectrum.names() == ["GetPlaybackSignalPeak", "GetConfigTitle"]
                with pytest.raises(DspCommandError, match="no config file"):
                    await client.reload()
            finally:
                await client.disconnect()

    asyncio.run(runner())
    assert [event.command for event in failures] == ["Reload"]
    assert "GetPlaybackSignalPeak" in [event.command for event in successes]
    assert {event.endpoint for event in successes} == {"control", "spectrum"}


def test_each_endpoint_uses_its_own_timeout() -> None:
    async def runner() -> None:
        async with FakeDspServer() as control, FakeDspServer() as spectrum:
            client = DspClient(_settings(control, spectrum.port, control_timeout_ms=5000, spectrum_timeout_ms=50))
            try:
                await client.connect()
                spectrum.stall("GetPlaybackSignalPeak")
                with pytest.raises(DspTimeoutError, match="timed out after 50ms"):
                    await client.get_spectrum_data()
                spectrum.release("GetPlaybackSignalPeak")
                assert await client.get_state() == "Running"
            finally:
                await client.disconnect()

    asyncio.run(runner())


def test_unknown_endpoint_is_rejected() -> None:
    async def runner() -> None:
        async with FakeDspServer() as control:
            client = DspClient(_settings(control, await _dead_port()))
            try:
                await client.connect()
                with pytest.raises(ValueError, match="unknown endpoint"):
                    await client.get_config_title("metrics")
                assert control.names() == ["GetConfigJson"]
            finally:
                await client.disconnect()

    asyncio.run(runner())
