"""State machine resolving a usable remote classifier model."""

from __future__ import annotations

import logging
import threading
from concurrent.futures import Future
from typing import Callable, Optional

from errors import PROVISIONING_FAILED, classify_exception
from interfaces import ClassifierClient, ErrorCallback, ModelChooser, ModelHandle, ModelRefStore
from models import ModelOutcome, ModelPhase, ModelState, ProvisionStage
from result_latch import Dispatch, spawn_daemon

log = logging.getLogger("senses.model")

StateCallback = Callable[[ModelState, ModelState], None]


class ModelLifecycle:
    """Selects, loads or provisions the remote model exactly once per program load.

    Callers use :meth:`ensure_ready`; everyone arriving while a resolution is
    in progress joins the waiter queue and is released with the same
    outcome when READY or FAILED is reached.
    """

    def __init__(
        self,
        client: ClassifierClient,
        store: Optional[ModelRefStore] = None,
        chooser: Optional[ModelChooser] = None,
        dispatch: Optional[Dispatch] = None,
        on_state_change: Optional[StateCallback] = None,
        on_error: Optional[ErrorCallback] = None,
    ) -> None:
        self._client = client
        self._store = store
        self._chooser = chooser
        self._dispatch = dispatch or spawn_daemon
        self._on_state_change = on_state_change
        self._on_error = on_error

        self._lock = threading.RLock()
        self._state = ModelState()
        self._waiters: list[Future[ModelOutcome]] = []
        self._seed_ref = self._read_persisted_ref()
        self._intents: list[str] = []
        self._entities: list[str] = []

    @property
    def state(self) -> ModelState:
        return self._state

    @property
    def model_ref(self) -> Optional[str]:
        return self._state.ready_ref

    @property
    def waiter_count(self) -> int:
        return len(self._waiters)

    def discovered_intents(self) -> list[str]:
        return list(self._intents)

    def discovered_entities(self) -> list[str]:
        return list(self._entities)

    def ensure_ready(self) -> Future[ModelOutcome]:
        future: Future[ModelOutcome] = Future()
        start: Optional[ModelState] = None
        with self._lock:
            state = self._state
            if state.phase == ModelPhase.READY:
                future.set_result(ModelOutcome(ready=True, model_ref=state.model_ref))
                return future
            if state.phase == ModelPhase.FAILED:
                future.set_result(ModelOutcome(ready=False, reason=state.reason))
                return future
            self._waiters.append(future)
            if state.in_progress:
                return future
            if self._seed_ref:
                start = ModelState(ModelPhase.LOADING, model_ref=self._seed_ref)
            else:
                start = ModelState(ModelPhase.SELECTING)
            self._transition(start)

        try:
            self._dispatch(lambda: self._resolve(start))
        except Exception as exc:
            self._fail("dispatch", exc)
        return future

    def reset(self) -> bool:
        """Re-enter UNSELECTED for a new program load; refused mid-resolution."""
        with self._lock:
            if self._state.in_progress:
                log.warning("Reset refused while model is %s", self._state)
                return False
            self._seed_ref = self._read_persisted_ref()
            self._intents = []
            self._entities = []
            self._transition(ModelState())
            return True

    # ------------------------------------------------------------------
    # Resolution pipeline (runs on the dispatch thread)
    # ------------------------------------------------------------------

    def _resolve(self, start: ModelState) -> None:
        if start.phase == ModelPhase.LOADING and start.model_ref:
            self._load(start.model_ref)
        else:
            self._select()

    def _select(self) -> None:
        try:
            models = self._client.list_models()
            choice = self._chooser.choose(models) if self._chooser else None
        except Exception as exc:
            self._fail("select", exc)
            return
        if choice is None:
            self._provision()
            return
        self._transition(ModelState(ModelPhase.LOADING, model_ref=choice))
        self._load(choice)

    def _load(self, model_ref: str) -> None:
        try:
            handle = self._client.get_model(model_ref)
        except Exception as exc:
            self._fail("load", exc)
            return
        self._finish(handle)

    def _provision(self) -> None:
        try:
            handle = self._client.create_model()
        except Exception as exc:
            self._fail("create", exc, PROVISIONING_FAILED)
            return
        ref = handle.model_ref
        self._transition(ModelState(ModelPhase.PROVISIONING, model_ref=ref, stage=ProvisionStage.CREATED))

        try:
            handle.load_data()
            handle.start_training()
        except Exception as exc:
            self._fail("load data", exc, PROVISIONING_FAILED)
            return
        self._transition(ModelState(ModelPhase.PROVISIONING, model_ref=ref, stage=ProvisionStage.TRAINING))

        try:
            handle.wait_for_training_to_complete()
        except Exception as exc:
            self._fail("training", exc, PROVISIONING_FAILED)
            return
        self._transition(ModelState(ModelPhase.PROVISIONING, model_ref=ref, stage=ProvisionStage.PUBLISHED))

        try:
            handle.publish()
        except Exception as exc:
            self._fail("publish", exc, PROVISIONING_FAILED)
            return
        self._finish(handle)

    def _finish(self, handle: ModelHandle) -> None:
        ref = handle.model_ref
        try:
            intents, entities = handle.intents(), handle.entities()
        except Exception as exc:
            log.warning("Could not list intents/entities of %s: %s", ref, exc)
            intents, entities = [], []

        with self._lock:
            self._intents = list(intents)
            self._entities = list(entities)
            if self._store is not None:
                try:
                    self._store.set_model_ref(ref)
                except Exception as exc:
                    log.warning("Could not persist model ref %s: %s", ref, exc)
            self._transition(ModelState(ModelPhase.READY, model_ref=ref))
            waiters = self._take_waiters()
        outcome = ModelOutcome(ready=True, model_ref=ref)
        for waiter in waiters:
            waiter.set_result(outcome)

    def _fail(self, step: str, exc: BaseException, code: Optional[str] = None) -> None:
        error = classify_exception(exc)
        reason = f"{step} failed: {error.message}"
        with self._lock:
            self._transition(ModelState(ModelPhase.FAILED, reason=reason))
            waiters = self._take_waiters()
        log.error("Model resolution failed during %s: %s", step, error.message)
        if self._on_error:
            self._on_error(code or error.code, reason)
        outcome = ModelOutcome(ready=False, reason=reason)
        for waiter in waiters:
            waiter.set_result(outcome)

    def _take_waiters(self) -> list[Future[ModelOutcome]]:
        waiters, self._waiters = self._waiters, []
        return waiters

    def _read_persisted_ref(self) -> Optional[str]:
        if self._store is None:
            return None
        try:
            return self._store.get_model_ref()
        except Exception as exc:
            log.warning("Could not read persisted model ref: %s", exc)
            return None

    def _transition(self, to_state: ModelState) -> None:
        with self._lock:
            from_state = self._state
            if from_state == to_state:
                return
            self._state = to_state
        log.info("Model state %s -> %s", from_state, to_state)
        if self._on_state_change:
            self._on_state_change(from_state, to_state)
