"""Language blocks: sentence understanding through the remote classifier."""

from __future__ import annotations

import logging
from typing import Callable, Optional

from errors import NO_ACTIVE_MODEL, SenseError
from interfaces import ClassifierClient, ErrorCallback, Host
from model_lifecycle import ModelLifecycle
from models import BlockSpec, BlockType, ExtensionInfo, MenuItem, Recognition
from predicates import intent_matches
from result_latch import ResultLatch

log = logging.getLogger("senses.language")

CLASSIFIER_CHANNEL = "classifier"

INTENT_MENU = (
    MenuItem(text="did not understand", value="None"),
    MenuItem(text="describe surroundings", value="Describe surroundings"),
    MenuItem(text="help", value="Help"),
    MenuItem(text="pick up", value="Pick up"),
    MenuItem(text="use tool on object", value="Use tool"),
)
DEFAULT_ENTITIES = ("tool", "object")


class LanguageSense:
    def __init__(
        self,
        client: ClassifierClient,
        lifecycle: ModelLifecycle,
        latch: Optional[ResultLatch] = None,
        on_error: Optional[ErrorCallback] = None,
    ) -> None:
        self._client = client
        self._lifecycle = lifecycle
        self._latch = latch or ResultLatch(on_error=on_error)
        self._on_error = on_error
        self._latch.register_channel(CLASSIFIER_CHANNEL, self._classify)
        self._reporters: Optional[dict[str, Callable[[], Optional[str]]]] = None

    @property
    def last_recognition(self) -> Optional[Recognition]:
        return self._latch.result(CLASSIFIER_CHANNEL)

    def understand(self, sentence: str) -> None:
        """Send ``sentence`` for classification; dropped while one is in flight."""
        if self._lifecycle.model_ref is None:
            log.debug("understand(%r) before a model is ready", sentence)
            outcome = self._lifecycle.ensure_ready()
            if self._on_error and outcome.done() and not outcome.result().ready:
                self._on_error(NO_ACTIVE_MODEL, outcome.result().reason)
            return
        self._latch.submit(CLASSIFIER_CHANNEL, str(sentence))

    def whenrecognized(self, intent: str) -> bool:
        return intent_matches(self.last_recognition, intent)

    def entity(self, entity_type: str) -> Optional[str]:
        """Value of the first entity of ``entity_type``; None before any result."""
        result = self.last_recognition
        if result is None:
            return None
        return result.entity(entity_type)

    def tool(self) -> Optional[str]:
        return self.entity("tool")

    def object(self) -> Optional[str]:
        return self.entity("object")

    def intent_menu(self) -> list[MenuItem]:
        discovered = self._lifecycle.discovered_intents()
        if not discovered:
            return list(INTENT_MENU)
        return [MenuItem(text=name.lower(), value=name) for name in discovered]

    def entity_reporters(self) -> dict[str, Callable[[], Optional[str]]]:
        """Reporter table keyed by entity name, built once the model is ready."""
        if self._reporters is not None:
            return self._reporters
        names = self._lifecycle.discovered_entities()
        table = {name: self._entity_reporter(name) for name in (names or DEFAULT_ENTITIES)}
        if names:
            self._reporters = table
        return table

    def get_info(self) -> ExtensionInfo:
        blocks = [
            BlockSpec(
                opcode="understand",
                block_type=BlockType.COMMAND,
                text="understand [SENTENCE]",
                arguments={"SENTENCE": {"default": "Open the door with the crowbar"}},
            ),
            BlockSpec(
                opcode="whenrecognized",
                block_type=BlockType.HAT,
                text="when sentence means [INTENT]",
                arguments={"INTENT": {"menu": "intent", "default": "Use tool"}},
                edge_triggered=True,
            ),
        ]
        blocks.extend(
            BlockSpec(opcode=name, block_type=BlockType.REPORTER, text=name)
            for name in self.entity_reporters()
        )
        return ExtensionInfo(
            id="language",
            name="Language",
            blocks=tuple(blocks),
            menus={"intent": self.intent_menu()},
        )

    def register(self, host: Host) -> None:
        for hat in self.get_info().hats():
            host.register(f"language.{hat.opcode}", edge_triggered=hat.edge_triggered)

    def _entity_reporter(self, name: str) -> Callable[[], Optional[str]]:
        return lambda: self.entity(name)

    def _classify(self, sentence: str) -> Recognition:
        model_ref = self._lifecycle.model_ref
        if model_ref is None:
            raise SenseError(NO_ACTIVE_MODEL)
        return self._client.submit_utterance(model_ref, sentence)
