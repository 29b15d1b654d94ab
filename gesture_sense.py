"""Gesture Remote blocks: hats fired by phone gestures."""

from __future__ import annotations

import logging
import threading
import time
from typing import Callable, Optional

from interfaces import GestureTransport, Host
from models import BlockSpec, BlockType, ExtensionInfo, MenuItem
from predicates import PULSE_WINDOW_S, pulse_active, pulse_deadline

log = logging.getLogger("senses.gesture")

GESTURES = (
    ("flick_right_lh", "Flick right with left hand"),
    ("flick_left_lh", "Flick left with left hand"),
    ("flick_right_rh", "Flick right with right hand"),
    ("flick_left_rh", "Flick left with right hand"),
    ("flip_close_lh", "Flip close with left hand"),
    ("flip_open_lh", "Flip open with left hand"),
    ("flip_close_rh", "Flip close with right hand"),
    ("flip_open_rh", "Flip open with right hand"),
    ("pan_left", "Pan left"),
    ("pan_right", "Pan right"),
    ("pan_up", "Pan up"),
    ("pan_down", "Pan down"),
    ("pull", "Pull"),
    ("push", "Push"),
)
GESTURE_NAMES = tuple(name for name, _ in GESTURES)


class GestureSense:
    """Each gesture event raises a pulse flag that reads true for ``window_s``.

    The upstream event has no "end", so the flag expires on its own: the
    deadline is compared at read time.
    """

    def __init__(
        self,
        transport: Optional[GestureTransport] = None,
        window_s: float = PULSE_WINDOW_S,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._transport = transport
        self._window_s = window_s
        self._clock = clock
        self._lock = threading.Lock()
        self._deadlines: dict[str, Optional[float]] = {name: None for name in GESTURE_NAMES}

    def start(self) -> None:
        if self._transport is not None:
            self._transport.start(self.handle_gesture)

    def stop(self) -> None:
        if self._transport is not None:
            self._transport.stop()

    def handle_gesture(self, data: dict) -> None:
        index = data.get("gestureClass")
        if isinstance(index, bool) or not isinstance(index, int) or not 0 <= index < len(GESTURE_NAMES):
            log.warning("Ignoring unknown gesture class %r", index)
            return
        name = GESTURE_NAMES[index]
        log.debug("Gesture %s", name)
        with self._lock:
            self._deadlines[name] = pulse_deadline(self._clock(), self._window_s)

    def whengesture(self, gesture: str) -> bool:
        return pulse_active(self._deadlines.get(gesture), self._clock())

    def gesture_menu(self) -> list[MenuItem]:
        return [MenuItem(text=label, value=name) for name, label in GESTURES]

    def get_info(self) -> ExtensionInfo:
        return ExtensionInfo(
            id="gestureRemote",
            name="Gesture Remote",
            blocks=(
                BlockSpec(
                    opcode="whengesture",
                    block_type=BlockType.HAT,
                    text="when you make gesture [GESTURE]",
                    arguments={"GESTURE": {"menu": "gesture", "default": GESTURE_NAMES[0]}},
                    edge_triggered=True,
                ),
            ),
            menus={"gesture": self.gesture_menu()},
        )

    def register(self, host: Host) -> None:
        for hat in self.get_info().hats():
            host.register(f"gestureRemote.{hat.opcode}", edge_triggered=hat.edge_triggered)
