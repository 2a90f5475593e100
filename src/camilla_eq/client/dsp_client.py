from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple

from camilla_eq.client.config import CONTROL, ENDPOINTS, SPECTRUM, ClientConfig
from camilla_eq.client.correlator import DspEvent
from camilla_eq.client.errors import DspCancelledError, DspConfigError, DspConnectionError, DspError
from camilla_eq.client.socket_session import LifecycleEvent, SocketSession
from camilla_eq.pipeline import (
    DisabledFiltersOverlay,
    JsonFileOverlayStore,
    normalize_config,
    validate_config_references,
)
from camilla_eq.protocol import (
    GET_AVAILABLE_CAPTURE_DEVICES,
    GET_AVAILABLE_PLAYBACK_DEVICES,
    GET_CONFIG,
    GET_CONFIG_DESCRIPTION,
    GET_CONFIG_JSON,
    GET_CONFIG_TITLE,
    GET_PLAYBACK_SIGNAL_PEAK,
    GET_STATE,
    GET_VERSION,
    GET_VOLUME,
    RELOAD,
    SET_CONFIG_JSON,
    SET_VOLUME,
    Command,
    build_command,
)

logger = logging.getLogger(__name__)

DeviceEntry = Tuple[str, Optional[str]]


class DspClient:
    """Facade over the control and spectrum sessions of one CamillaDSP engine.

    Commands on the same endpoint are serialized by that endpoint's queue;
    the two endpoints are independent of each other.  ``config`` holds the
    last document downloaded from the engine, normalized.
    """

    def __init__(
        self,
        config: Optional[ClientConfig] = None,
        *,
        overlay: Optional[DisabledFiltersOverlay] = None,
    ) -> None:
        self.settings = config or ClientConfig.from_env()
        self.on_dsp_success: Optional[Callable[[DspEvent], None]] = None
        self.on_dsp_failure: Optional[Callable[[DspEvent], None]] = None
        self.on_socket_lifecycle: Optional[Callable[[LifecycleEvent], None]] = None
        self.control = SocketSession(CONTROL, on_lifecycle=self._on_lifecycle, observer=self._on_event)
        self.spectrum = SocketSession(SPECTRUM, on_lifecycle=self._on_lifecycle, observer=self._on_event)
        if overlay is None:
            path = self.settings.overlay_path
            overlay = DisabledFiltersOverlay(JsonFileOverlayStore(path) if path else None)
        self.overlay = overlay
        self.host: Optional[str] = self.settings.host
        self.control_port = self.settings.control_port
        self.spectrum_port = self.settings.spectrum_port
        self.config: Optional[Dict[str, Any]] = None

    @property
    def connected(self) -> bool:
        return self.control.is_open()

    @property
    def spectrum_connected(self) -> bool:
        return self.spectrum.is_open()

    # ------------------------------------------------------------------
    async def connect(
        self,
        host: Optional[str] = None,
        control_port: Optional[int] = None,
        spectrum_port: Optional[int] = None,
    ) -> Dict[str, Any]:
        """Open both sockets and download the active configuration.

        A control socket failure raises; a spectrum socket failure is logged
        and leaves ``spectrum_connected`` false.  Returns the normalized
        configuration document.
        """

        self.host = host or self.host
        self.control_port = control_port or self.control_port
        self.spectrum_port = spectrum_port or self.spectrum_port
        if not self.host:
            raise DspConnectionError("No server specified")

        open_timeout = self.settings.open_timeout_s
        await self.control.connect(self._url(self.control_port), open_timeout_s=open_timeout)
        try:
            await self.spectrum.connect(self._url(self.spectrum_port), open_timeout_s=open_timeout)
        except DspConnectionError as exc:
            logger.warning("Spectrum socket unavailable, continuing without it: %s", exc)

        config = await self.download_config()
        logger.info(
            "Connected to %s (control=%d spectrum=%s): %d filters, %d mixers, %d pipeline steps",
            self.host,
            self.control_port,
            self.spectrum_port if self.spectrum_connected else "off",
            len(config["filters"]),
            len(config["mixers"]),
            len(config["pipeline"]),
        )
        return config

    async def disconnect(self) -> None:
        reason = DspCancelledError("Disconnected")
        await asyncio.gather(
            self.control.disconnect(reason),
            self.spectrum.disconnect(reason),
        )

    async def __aenter__(self) -> "DspClient":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.disconnect()

    # ------------------------------------------------------------------
    async def send(self, command: Command) -> Any:
        """Issue *command* on the control endpoint and return the reply value."""

        return await self._send_on(CONTROL, command)

    async def send_spectrum(self, command: Command) -> Any:
        return await self._send_on(SPECTRUM, command)

    def _session(self, endpoint: str) -> SocketSession:
        if endpoint not in ENDPOINTS:
            raise ValueError(f"unknown endpoint: {endpoint!r}")
        return self.spectrum if endpoint == SPECTRUM else self.control

    async def _send_on(self, endpoint: str, command: Command) -> Any:
        session = self._session(endpoint)
        return await session.request(command, self.settings.timeout_ms(endpoint))

    # ------------------------------------------------------------------
    async def download_config(self) -> Dict[str, Any]:
        raw = await self.send(GET_CONFIG_JSON)
        if raw is not None and not isinstance(raw, Mapping):
            raise DspError(f"{GET_CONFIG_JSON} returned {type(raw).__name__}, expected an object")
        self.config = normalize_config(raw)
        return self.config

    async def upload_config(self, config: Optional[Mapping[str, Any]] = None) -> Dict[str, Any]:
        """Validate and push *config* (default: ``self.config``), then re-download it.

        The engine applies ``SetConfigJson`` directly; the returned document
        is what it accepted.
        """

        document = config if config is not None else self.config
        if document is None:
            raise DspConfigError(["no configuration loaded"])
        problems = validate_config_references(document)
        if problems:
            for problem in problems:
                logger.error("Config validation: %s", problem)
            raise DspConfigError(problems)
        await self.send(build_command(SET_CONFIG_JSON, json.dumps(document)))
        return await self.download_config()

    async def reload(self) -> None:
        await self.send(RELOAD)

    async def get_state(self) -> str:
        return await self.send(GET_STATE)

    async def get_volume(self) -> float:
        return await self.send(GET_VOLUME)

    async def set_volume(self, volume: float) -> None:
        await self.send(build_command(SET_VOLUME, volume))

    async def get_version(self) -> str:
        return await self.send(GET_VERSION)

    async def get_available_capture_devices(self, backend: str) -> List[DeviceEntry]:
        return _device_entries(await self.send(build_command(GET_AVAILABLE_CAPTURE_DEVICES, backend)))

    async def get_available_playback_devices(self, backend: str) -> List[DeviceEntry]:
        return _device_entries(await self.send(build_command(GET_AVAILABLE_PLAYBACK_DEVICES, backend)))

    async def get_config_yaml(self, endpoint: str = CONTROL) -> Optional[str]:
        return await self._send_on(endpoint, GET_CONFIG)

    async def get_config_title(self, endpoint: str = CONTROL) -> Optional[str]:
        return await self._send_on(endpoint, GET_CONFIG_TITLE)

    async def get_config_description(self, endpoint: str = CONTROL) -> Optional[str]:
        return await self._send_on(endpoint, GET_CONFIG_DESCRIPTION)

    async def get_spectrum_data(self) -> Any:
        return await self.send_spectrum(GET_PLAYBACK_SIGNAL_PEAK)

    # ------------------------------------------------------------------
    def _url(self, port: int) -> str:
        return f"ws://{self.host}:{port}"

    def _on_event(self, event: DspEvent) -> None:
        callback = self.on_dsp_success if event.ok else self.on_dsp_failure
        if callback is None:
            return
        try:
            callback(event)
        except Exception:
            logger.debug("DspClient: %s event callback failed", event.endpoint, exc_info=True)

    def _on_lifecycle(self, event: LifecycleEvent) -> None:
        callback = self.on_socket_lifecycle
        if callback is None:
            return
        try:
            callback(event)
        except Exception:
            logger.debug("DspClient: lifecycle callback failed", exc_info=True)


def _device_entries(value: Any) -> List[DeviceEntry]:
    entries: List[DeviceEntry] = []
    for item in value or ():
        if isinstance(item, (list, tuple)) and item:
            name = str(item[0])
            description = item[1] if len(item) > 1 and item[1] is not None else None
            entries.append((name, None if description is None else str(description)))
        elif isinstance(item, str):
            entries.append((item, None))
    return entries
