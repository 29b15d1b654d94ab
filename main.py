"""Application entrypoint: runs the senses against the reference poll-loop host."""

from __future__ import annotations

import argparse
import logging
from pathlib import Path
from typing import Optional

from arbiter import RecognitionSynthesisArbiter
from classifier import LuisClassifierClient
from config import JsonConfigStore, StageState
from errors import ERROR_MESSAGES
from gesture_sense import GESTURE_NAMES, GestureSense
from gesture_transport import SocketIOGestureTransport
from host import PollingHost
from language_sense import LanguageSense
from listener import ContinuousListener
from model_lifecycle import ModelLifecycle
from models import ModelState, ModelSummary
from recognizer import DashscopeTranscriber
from recorder import SoundDeviceRecorder
from speech_sense import SpeechSense
from synthesizer import Pyttsx3Synthesizer

log = logging.getLogger("senses.main")


class ConsoleModelChooser:
    """Lets the operator pick an existing classifier model or create a new one."""

    def choose(self, models: list[ModelSummary]) -> Optional[str]:
        print("Available language models:")
        print("  0: create a new model")
        for i, model in enumerate(models, start=1):
            print(f"  {i}: {model.name or model.model_ref}")
        answer = input("Choose a model [0]: ").strip()
        if not answer.isdigit() or int(answer) == 0 or int(answer) > len(models):
            return None
        return models[int(answer) - 1].model_ref


def parse_args(argv: Optional[list[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Gesture, language and speech sense blocks")
    parser.add_argument("--config", type=Path, default=None, help="Path to config.json")
    parser.add_argument("--log-level", default="INFO", help="Logging level (default: INFO)")
    parser.add_argument("--tick-ms", type=float, default=33.0, help="Poll interval in ms (default: 33)")
    parser.add_argument("--phrase", action="append", default=[], help="Phrase for a 'when I hear' hat")
    parser.add_argument("--understand", default=None, help="Sentence to classify once a model is ready")
    parser.add_argument("--say", default=None, help="Text to speak at startup")
    parser.add_argument("--no-gesture", action="store_true", help="Disable the gesture sense")
    parser.add_argument("--no-language", action="store_true", help="Disable the language sense")
    parser.add_argument("--no-speech", action="store_true", help="Disable the speech sense")
    return parser.parse_args(argv)


def _on_error(code: str, message: str) -> None:
    log.warning("%s %s", ERROR_MESSAGES.get(code, code), message)


def _on_model_state(from_state: ModelState, to_state: ModelState) -> None:
    print(f"[model] {from_state} -> {to_state}")


def main(argv: Optional[list[str]] = None) -> int:
    args = parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, str(args.log_level).upper(), logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    config = JsonConfigStore(path=args.config)
    host = PollingHost(tick_s=args.tick_ms / 1000.0, on_fire=lambda name: print(f"[hat] {name}"))
    stoppers = []

    if not args.no_gesture:
        gesture = GestureSense(
            SocketIOGestureTransport(config.get_gesture_url(), config.get_gesture_session())
        )
        gesture.register(host)
        for name in GESTURE_NAMES:
            host.bind("gestureRemote.whengesture", lambda name=name: gesture.whengesture(name), name)
        gesture.start()
        stoppers.append(gesture.stop)

    language: Optional[LanguageSense] = None
    if not args.no_language:
        client = LuisClassifierClient(
            config.get_classifier_endpoint(),
            config.get_subscription_key(),
            training_data=config.get_training_data(),
        )
        lifecycle = ModelLifecycle(
            client,
            store=StageState(store=config),
            chooser=ConsoleModelChooser(),
            on_state_change=_on_model_state,
            on_error=_on_error,
        )
        language = LanguageSense(client, lifecycle, on_error=_on_error)
        language.register(host)
        for item in language.intent_menu():
            host.bind("language.whenrecognized", lambda v=item.value: language.whenrecognized(v), item.value)
        lifecycle.ensure_ready()

    speech: Optional[SpeechSense] = None
    if not args.no_speech:
        synthesizer = Pyttsx3Synthesizer()
        listener = ContinuousListener(
            SoundDeviceRecorder(),
            DashscopeTranscriber(api_key=config.get_dashscope_api_key()),
        )
        arbiter = RecognitionSynthesisArbiter(listener, synthesizer, on_error=_on_error)
        speech = SpeechSense(arbiter, synthesizer, voice_name=config.get_voice_name())
        speech.register(host)
        for phrase in args.phrase:
            host.bind("speech.whenihear", lambda p=phrase: speech.whenihear(p), phrase)
        speech.start()
        stoppers.append(speech.stop)
        if args.say:
            speech.speak(args.say)

    sentence = args.understand
    try:
        while True:
            if language is not None and sentence and language.last_recognition is None:
                language.understand(sentence)
            host.run(max_ticks=30)
    except KeyboardInterrupt:
        print("Stopping...")
    finally:
        for stop in stoppers:
            stop()
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
