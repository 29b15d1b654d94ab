"""Minimal cooperative poll-loop host for running sense hats outside a block editor."""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from typing import Callable, Optional

log = logging.getLogger("senses.host")

Predicate = Callable[[], bool]
HatCallback = Callable[[str], None]


@dataclass
class _Hat:
    name: str
    predicate: Optional[Predicate] = None
    edge_triggered: bool = True
    last_value: bool = False


class PollingHost:
    """Evaluates every hat predicate once per tick.

    Edge-triggered hats fire on a false -> true transition only; others fire
    on every tick they read true. Predicates must return immediately.
    """

    def __init__(self, tick_s: float = 1 / 30, on_fire: Optional[HatCallback] = None) -> None:
        self.tick_s = tick_s
        self._on_fire = on_fire
        self._declared: dict[str, bool] = {}
        self._hats: dict[str, _Hat] = {}
        self._stop_event = threading.Event()

    def register(self, hat_name: str, edge_triggered: bool = True) -> None:
        self._declared[hat_name] = edge_triggered

    def bind(self, hat_name: str, predicate: Predicate, argument: str = "") -> str:
        """Attach one hat instance; returns the name it fires under."""
        if hat_name not in self._declared:
            raise KeyError(f"hat not registered: {hat_name}")
        name = f"{hat_name}({argument})" if argument else hat_name
        self._hats[name] = _Hat(name=name, predicate=predicate, edge_triggered=self._declared[hat_name])
        return name

    def is_registered(self, hat_name: str) -> bool:
        return hat_name in self._declared

    def tick(self) -> list[str]:
        fired: list[str] = []
        for hat in self._hats.values():
            if hat.predicate is None:
                continue
            try:
                value = bool(hat.predicate())
            except Exception:
                log.exception("Hat %s raised; treating as false", hat.name)
                value = False
            if value and (not hat.edge_triggered or not hat.last_value):
                fired.append(hat.name)
            hat.last_value = value
        for name in fired:
            if self._on_fire:
                self._on_fire(name)
        return fired

    def run(self, max_ticks: Optional[int] = None) -> None:
        ticks = 0
        while not self._stop_event.is_set():
            self.tick()
            ticks += 1
            if max_ticks is not None and ticks >= max_ticks:
                return
            time.sleep(self.tick_s)

    def stop(self) -> None:
        self._stop_event.set()
