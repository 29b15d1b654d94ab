"""Socket.io channel delivering gesture events from the phone remote."""

from __future__ import annotations

import json
import logging
import threading
from typing import Any, Callable, Optional
from urllib.parse import urlencode

from interfaces import GestureCallback

try:
    import socketio
except Exception:  # pragma: no cover
    socketio = None  # type: ignore

log = logging.getLogger("senses.gesture_transport")

GESTURE_EVENT = "gesture"
RECONNECT_DELAY_S = 2.0


def session_url(url: str, session_key: str) -> str:
    separator = "&" if "?" in url else "?"
    return f"{url}{separator}{urlencode({'sessid': session_key})}"


def parse_gesture_payload(data: Any) -> Optional[dict]:
    """Accepts the ``gesture`` event body as a dict or a JSON string."""
    if isinstance(data, (str, bytes)):
        try:
            data = json.loads(data)
        except ValueError:
            log.debug("Ignoring non-JSON gesture payload: %r", data)
            return None
    if not isinstance(data, dict):
        return None
    index = data.get("gestureClass")
    if isinstance(index, bool) or not isinstance(index, int):
        return None
    return data


class SocketIOGestureTransport:
    """Socket.io client for the gesture service, connected from a daemon thread.

    The first connection is retried every ``reconnect_delay_s`` until it
    succeeds or ``stop()`` is called; after that the client's own
    reconnection takes over. Events reach ``on_gesture`` in arrival order.
    """

    def __init__(
        self,
        url: str,
        session_key: str = "scratch",
        reconnect_delay_s: float = RECONNECT_DELAY_S,
        client_factory: Optional[Callable[[], Any]] = None,
    ) -> None:
        self.url = session_url(url, session_key)
        self._reconnect_delay_s = reconnect_delay_s
        self._client_factory = client_factory
        self._client: Any = None
        self._lock = threading.Lock()
        self._stop_event = threading.Event()
        self._connected = False
        self._thread: Optional[threading.Thread] = None

    def start(self, on_gesture: GestureCallback) -> None:
        if self._client is not None:
            return
        client = self._make_client(on_gesture)
        self._client = client
        self._stop_event.clear()
        self._connected = False
        self._thread = threading.Thread(
            target=self._connect_loop,
            args=(client,),
            daemon=True,
            name="gesture-transport",
        )
        self._thread.start()

    def stop(self) -> None:
        with self._lock:
            client, self._client = self._client, None
            self._stop_event.set()
            connected, self._connected = self._connected, False
        if client is not None and connected:
            self._disconnect(client)
        if self._thread is not None:
            self._thread.join(timeout=1.0)
        self._thread = None

    def _make_client(self, on_gesture: GestureCallback) -> Any:
        if self._client_factory is not None:
            client = self._client_factory()
        elif socketio is None:
            raise RuntimeError("python-socketio is not installed")
        else:
            client = socketio.Client(reconnection=True, reconnection_delay=self._reconnect_delay_s)

        def handle_gesture(data: Any) -> None:
            payload = parse_gesture_payload(data)
            if payload is None:
                log.debug("Ignoring gesture payload %r", data)
                return
            on_gesture(payload)

        client.on("connect", lambda: log.info("Connected to gesture service %s", self.url))
        client.on("disconnect", lambda *args: log.warning("Gesture service disconnected"))
        client.on(GESTURE_EVENT, handle_gesture)
        return client

    def _connect_loop(self, client: Any) -> None:
        while not self._stop_event.is_set():
            try:
                client.connect(self.url, transports=["websocket", "polling"])
            except Exception as exc:
                log.warning("Gesture service unreachable: %s", exc)
                self._stop_event.wait(self._reconnect_delay_s)
                continue
            with self._lock:
                stopped = self._stop_event.is_set()
                self._connected = not stopped
            if stopped:
                self._disconnect(client)
            return

    @staticmethod
    def _disconnect(client: Any) -> None:
        try:
            client.disconnect()
        except Exception as exc:
            log.warning("Closing gesture connection failed: %s", exc)
