"""Loopback CamillaDSP stand-in for exercising the client over real sockets.

`FakeDspServer` binds a `websockets` server to an ephemeral localhost port,
answers commands from a scriptable reply table and records every frame it
receives (name, payload and arrival time) so tests can assert on ordering.
Replies for a command can be stalled and released later to simulate a slow or
late engine.
"""

from __future__ import annotations

import asyncio
import json
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

import websockets
from websockets.exceptions import ConnectionClosed

SAMPLE_CONFIG: Dict[str, Any] = {
    "devices": {"samplerate": 48000, "capture": {"channels": 2}, "playback": {"channels": 2}},
    "filters": {
        "Bass": {"type": "Biquad", "parameters": {"type": "Lowshelf", "freq": 100, "gain": 3, "q": 0.7}},
        "Treble": {"type": "Biquad", "parameters": {"type": "Highshelf", "freq": 8000, "gain": -2, "q": 0.7}},
    },
    "mixers": {},
    "pipeline": [
        {"type": "Filter", "channels": [0], "names": ["Bass", "Treble"]},
        {"type": "Filter", "channels": [1], "names": ["Bass"]},
    ],
}


@dataclass(frozen=True)
class ReceivedFrame:
    name: str
    payload: Any
    text: str
    at: float


Responder = Callable[[Any], Any]


class FakeDspServer:
    """Scriptable DSP endpoint; use as ``async with FakeDspServer() as srv``."""

    def __init__(self, config: Optional[Dict[str, Any]] = None) -> None:
        self.config = json.loads(json.dumps(config if config is not None else SAMPLE_CONFIG))
        self.volume = -10.0
        self.received: List[ReceivedFrame] = []
        self.connections: List[Any] = []
        self._responders: Dict[str, Responder] = {}
        self._raw: Dict[str, str] = {}
        self._stalled: Dict[str, asyncio.Event] = {}
        self._server: Any = None
        self._tasks: List[asyncio.Task[None]] = []
        self.port = 0

    # -- lifecycle -------------------------------------------------------
    async def start(self) -> "FakeDspServer":
        self._server = await websockets.serve(self._handler, "127.0.0.1", 0)
        self.port = self._server.sockets[0].getsockname()[1]
        return self

    async def stop(self) -> None:
        for task in self._tasks:
            task.cancel()
        if self._server is not None:
            self._server.close()
            await self._server.wait_closed()
            self._server = None

    async def __aenter__(self) -> "FakeDspServer":
        return await self.start()

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.stop()

    @property
    def url(self) -> str:
        return f"ws://127.0.0.1:{self.port}"

    # -- scripting -------------------------------------------------------
    def respond(self, name: str, responder: Responder) -> None:
        """Answer *name* with ``{"result": "Ok", "value": responder(payload)}``."""

        self._responders[name] = responder

    def reply_ok(self, name: str, value: Any) -> None:
        self._responders[name] = lambda _payload: value

    def reply_error(self, name: str, body: Dict[str, Any]) -> None:
        """Answer *name* with the literal inner envelope *body*."""

        self._raw[name] = json.dumps({name: body})

    def reply_raw(self, name: str, text: str) -> None:
        self._raw[name] = text

    def stall(self, name: str) -> None:
        """Hold replies to *name* until :meth:`release` is called."""

        self._stalled[name] = asyncio.Event()

    def release(self, name: str) -> None:
        event = self._stalled.pop(name, None)
        if event is not None:
            event.set()

    def names(self) -> List[str]:
        return [frame.name for frame in self.received]

    async def wait_for_frames(self, count: int, timeout: float = 2.0) -> None:
        deadline = time.monotonic() + timeout
        while len(self.received) < count:
            if time.monotonic() > deadline:
                raise AssertionError(f"expected {count} frames, got {self.names()}")
            await asyncio.sleep(0.005)

    async def close_clients(self, code: int = 1011, reason: str = "engine stopped") -> None:
        for ws in list(self.connections):
            await ws.close(code=code, reason=reason)

    # -- internals -------------------------------------------------------
    async def _handler(self, ws: Any) -> None:
        self.connections.append(ws)
        try:
            async for message in ws:
                self._on_frame(ws, message)
        except ConnectionClosed:
            pass
        finally:
            if ws in self.connections:
                self.connections.remove(ws)

    def _on_frame(self, ws: Any, message: Any) -> None:
        data = json.loads(message)
        if isinstance(data, str):
            name, payload = data, None
        else:
            name, payload = next(iter(data.items()))
        self.received.append(ReceivedFrame(name=name, payload=payload, text=message, at=time.monotonic()))
        reply = self._reply_text(name, payload)
        stalled = self._stalled.get(name)
        task = asyncio.get_running_loop().create_task(self._send(ws, reply, stalled))
        self._tasks.append(task)

    async def _send(self, ws: Any, reply: str, stalled: Optional[asyncio.Event]) -> None:
        if stalled is not None:
            await stalled.wait()
        try:
            await ws.send(reply)
        except ConnectionClosed:
            pass

    def _reply_text(self, name: str, payload: Any) -> str:
        if name in self._raw:
            return self._raw[name]
        if name in self._responders:
            value = self._responders[name](payload)
        else:
            value = self._default_value(name, payload)
        return json.dumps({name: {"result": "Ok", "value": value}})

    def _default_value(self, name: str, payload: Any) -> Any:
        if name == "GetConfigJson":
            return json.dumps(self.config)
        if name == "SetConfigJson":
            self.config = json.loads(payload)
            return None
        if name == "GetVolume":
            return self.volume
        if name == "SetVolume":
            self.volume = float(payload)
            return None
        if name == "GetState":
            return "Running"
        if name == "GetVersion":
            return "3.0.0"
        if name == "GetPlaybackSignalPeak":
            return [-12.5, -14.0]
        return None
