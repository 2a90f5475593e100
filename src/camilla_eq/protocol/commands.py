"""Wire codec for the CamillaDSP websocket command protocol.

Outbound frames are either a bare JSON string naming the command
(``"GetVolume"``) or a single-key object carrying a payload
(``{"SetVolume": -12.0}``).  Inbound frames mirror the command name as the
only key and wrap the outcome in ``{"result": "Ok" | "Error", "value": ...}``.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any, Dict, Mapping, Union

Command = Union[str, Mapping[str, Any]]

RESULT_OK = "Ok"
RESULT_ERROR = "Error"

# Control commands
GET_CONFIG_JSON = "GetConfigJson"
SET_CONFIG_JSON = "SetConfigJson"
GET_CONFIG = "GetConfig"
GET_CONFIG_TITLE = "GetConfigTitle"
GET_CONFIG_DESCRIPTION = "GetConfigDescription"
RELOAD = "Reload"
GET_STATE = "GetState"
GET_VOLUME = "GetVolume"
SET_VOLUME = "SetVolume"
GET_VERSION = "GetVersion"
GET_AVAILABLE_CAPTURE_DEVICES = "GetAvailableCaptureDevices"
GET_AVAILABLE_PLAYBACK_DEVICES = "GetAvailablePlaybackDevices"

# Spectrum commands
GET_PLAYBACK_SIGNAL_PEAK = "GetPlaybackSignalPeak"

# Commands whose successful ``value`` is itself a serialized JSON document.
NESTED_DOCUMENT_COMMANDS = frozenset({GET_CONFIG_JSON})

_MISSING = object()


def command_name(command: Command) -> str:
    """Return the name the server will echo back for *command*."""

    if isinstance(command, str):
        if not command:
            raise ValueError("command name must be non-empty")
        return command
    if not isinstance(command, Mapping):
        raise ValueError(f"command must be a string or mapping, got {type(command).__name__}")
    keys = list(command.keys())
    if len(keys) != 1:
        raise ValueError(f"command mapping must have exactly one key, got {len(keys)}")
    return str(keys[0])


def build_command(name: str, payload: Any = _MISSING) -> Command:
    if payload is _MISSING:
        return name
    return {name: payload}


def encode_command(command: Command) -> str:
    command_name(command)
    if isinstance(command, str):
        return json.dumps(command)
    return json.dumps(dict(command), separators=(",", ":"))


@dataclass(frozen=True)
class ReplyEnvelope:
    """One decoded inbound frame."""

    command: str
    result: str
    value: Any
    raw: Dict[str, Any]

    @property
    def ok(self) -> bool:
        return self.result == RESULT_OK

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ReplyEnvelope":
        if not isinstance(data, Mapping) or not data:
            raise ValueError("reply frame must be a non-empty JSON object")
        name = next(iter(data.keys()))
        body = data[name]
        if not isinstance(body, Mapping):
            raise ValueError(f"reply for {name} must wrap a mapping")
        if "result" not in body:
            raise ValueError(f"reply for {name} is missing 'result'")
        return cls(
            command=str(name),
            result=str(body["result"]),
            value=body.get("value"),
            raw=dict(body),
        )

    @classmethod
    def from_text(cls, text: str | bytes) -> "ReplyEnvelope":
        if isinstance(text, bytes):
            text = text.decode("utf-8")
        try:
            data = json.loads(text)
        except json.JSONDecodeError as exc:
            raise ValueError(f"reply frame is not valid JSON: {exc}") from exc
        return cls.from_dict(data)

    def decoded_value(self) -> Any:
        """Return ``value`` with the second decode pass applied where needed."""

        if self.ok and self.command in NESTED_DOCUMENT_COMMANDS and isinstance(self.value, (str, bytes)):
            try:
                return json.loads(self.value)
            except json.JSONDecodeError as exc:
                raise ValueError(f"{self.command} returned an undecodable document: {exc}") from exc
        return self.value

    def error_message(self) -> str:
        """Best available failure text; never empty."""

        for candidate in (self.value, self.raw.get("error"), self.raw.get("message")):
            if candidate:
                return candidate if isinstance(candidate, str) else json.dumps(candidate)
        return json.dumps(self.raw, sort_keys=True)


def peek_command_name(text: str | bytes) -> str | None:
    """Return the top-level key of an inbound frame, or ``None`` if unreadable."""

    if isinstance(text, bytes):
        try:
            text = text.decode("utf-8")
        except UnicodeDecodeError:
            return None
    try:
        data = json.loads(text)
    except json.JSONDecodeError:
        return None
    if not isinstance(data, Mapping) or not data:
        return None
    return str(next(iter(data.keys())))
