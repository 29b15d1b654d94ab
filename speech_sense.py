"""Speech blocks: hear phrases, speak text, report the latest speech."""

from __future__ import annotations

import logging
import random
from concurrent.futures import Future
from typing import Optional

from arbiter import RecognitionSynthesisArbiter
from interfaces import Host, Synthesizer
from models import BlockSpec, BlockType, ExtensionInfo, ListeningState, MenuItem
from predicates import transcript_matches

log = logging.getLogger("senses.speech")

RANDOM_VOICE = "Random"


class SpeechSense:
    def __init__(
        self,
        arbiter: RecognitionSynthesisArbiter,
        synthesizer: Synthesizer,
        voice_name: str = "default",
        rng: Optional[random.Random] = None,
    ) -> None:
        self._arbiter = arbiter
        self._synthesizer = synthesizer
        self._rng = rng or random.Random()
        self.voice_name = voice_name
        self._started = False

    def start(self) -> None:
        self._arbiter.start()
        self._started = True

    def stop(self) -> None:
        self._arbiter.stop()
        self._started = False

    def whenihear(self, phrase: str) -> bool:
        """True once per heard utterance containing ``phrase``.

        Transcripts are only inspected while listening is active, never while
        our own speech is playing.
        """
        if not self._started or self._arbiter.state != ListeningState.ACTIVE:
            return False
        if not transcript_matches(self._arbiter.transcripts(), phrase):
            return False
        self._arbiter.consume_transcripts()
        return True

    def getlatestspeech(self) -> str:
        return self._arbiter.latest_speech

    def speak(self, text: str) -> Future[bool]:
        return self._arbiter.speak(str(text).lower(), self.voice_name)

    def setvoice(self, voice: str) -> None:
        if voice != RANDOM_VOICE:
            self.voice_name = voice
            return
        voices = self._available_voices()
        if voices:
            self.voice_name = self._rng.choice(voices)

    def voice_menu(self) -> list[MenuItem]:
        items = [MenuItem(text=name, value=name) for name in self._available_voices()]
        return [MenuItem(text="default", value="default"), *items, MenuItem(text="random", value=RANDOM_VOICE)]

    def get_info(self) -> ExtensionInfo:
        return ExtensionInfo(
            id="speech",
            name="Speech",
            blocks=(
                BlockSpec(
                    opcode="whenihear",
                    block_type=BlockType.HAT,
                    text="When I hear [STRING]",
                    arguments={"STRING": {"default": "Hi, Scratch!"}},
                    edge_triggered=True,
                ),
                BlockSpec(
                    opcode="speak",
                    block_type=BlockType.COMMAND,
                    text="speak [STRING]",
                    arguments={"STRING": {"default": "Hello, how are you?"}},
                ),
                BlockSpec(
                    opcode="setvoice",
                    block_type=BlockType.COMMAND,
                    text="set voice to [VOICE]",
                    arguments={"VOICE": {"menu": "voice", "default": "default"}},
                ),
                BlockSpec(opcode="getlatestspeech", block_type=BlockType.REPORTER, text="get latest speech"),
            ),
            menus={"voice": self.voice_menu()},
        )

    def register(self, host: Host) -> None:
        for hat in self.get_info().hats():
            host.register(f"speech.{hat.opcode}", edge_triggered=hat.edge_triggered)

    def _available_voices(self) -> list[str]:
        try:
            return self._synthesizer.voices()
        except Exception as exc:
            log.warning("Voice list unavailable: %s", exc)
            return []
