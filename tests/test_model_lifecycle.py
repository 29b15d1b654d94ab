from __future__ import annotations

from typing import Callable, Optional

from errors import NETWORK_ERROR, PROVISIONING_FAILED, SenseError
from model_lifecycle import ModelLifecycle
from models import ModelPhase, ModelState, ModelSummary, ProvisionStage


class ManualDispatch:
    def __init__(self) -> None:
        self.jobs: list = []

    def __call__(self, job) -> None:  # noqa: ANN001
        self.jobs.append(job)

    def run_all(self) -> None:
        while self.jobs:
            self.jobs.pop(0)()


class FakeHandle:
    def __init__(self, model_ref: str, fail_at: str = "") -> None:
        self._model_ref = model_ref
        self.fail_at = fail_at
        self.steps: list[str] = []
        self.on_training: Optional[Callable[[], None]] = None

    @property
    def model_ref(self) -> str:
        return self._model_ref

    def _step(self, name: str) -> None:
        self.steps.append(name)
        if self.fail_at == name:
            raise SenseError(PROVISIONING_FAILED, f"{name} quota exceeded")

    def load_data(self) -> None:
        self._step("load_data")

    def start_training(self) -> None:
        self._step("start_training")

    def wait_for_training_to_complete(self) -> None:
        if self.on_training:
            self.on_training()
        self._step("wait")

    def publish(self) -> None:
        self._step("publish")

    def intents(self) -> list[str]:
        return ["Help", "Pick up"]

    def entities(self) -> list[str]:
        return ["tool", "object"]


class FakeClient:
    def __init__(self, models: Optional[list[ModelSummary]] = None) -> None:
        self.models = models or []
        self.created: list[FakeHandle] = []
        self.loaded: list[str] = []
        self.next_handle = FakeHandle("new-app")
        self.load_error: Optional[Exception] = None

    def submit_utterance(self, model_ref: str, text: str):  # noqa: ANN201
        raise AssertionError("not used")

    def list_models(self) -> list[ModelSummary]:
        return self.models

    def create_model(self) -> FakeHandle:
        self.created.append(self.next_handle)
        return self.next_handle

    def get_model(self, model_ref: str) -> FakeHandle:
        self.loaded.append(model_ref)
        if self.load_error:
            raise self.load_error
        return FakeHandle(model_ref)


class FakeStore:
    def __init__(self, model_ref: Optional[str] = None) -> None:
        self.model_ref = model_ref
        self.writes: list[Optional[str]] = []

    def get_model_ref(self) -> Optional[str]:
        return self.model_ref

    def set_model_ref(self, model_ref: Optional[str]) -> None:
        self.model_ref = model_ref
        self.writes.append(model_ref)


class FakeChooser:
    def __init__(self, answer: Optional[str]) -> None:
        self.answer = answer
        self.offered: list[list[ModelSummary]] = []

    def choose(self, models: list[ModelSummary]) -> Optional[str]:
        self.offered.append(models)
        return self.answer


def _make(client=None, store=None, chooser=None):  # noqa: ANN001, ANN202
    dispatch = ManualDispatch()
    transitions: list[tuple[ModelState, ModelState]] = []
    errors: list[tuple[str, str]] = []
    lifecycle = ModelLifecycle(
        client or FakeClient(),
        store=store,
        chooser=chooser,
        dispatch=dispatch,
        on_state_change=lambda f, t: transitions.append((f, t)),
        on_error=lambda c, m: errors.append((c, m)),
    )
    return lifecycle, dispatch, transitions, errors


def test_persisted_ref_goes_straight_to_loading() -> None:
    client = FakeClient()
    store = FakeStore("saved-app")
    chooser = FakeChooser("other")
    lifecycle, dispatch, transitions, _ = _make(client, store, chooser)

    future = lifecycle.ensure_ready()
    assert lifecycle.state == ModelState(ModelPhase.LOADING, model_ref="saved-app")
    assert not future.done()

    dispatch.run_all()

    assert future.result().ready is True
    assert future.result().model_ref == "saved-app"
    assert lifecycle.model_ref == "saved-app"
    assert chooser.offered == []
    assert client.loaded == ["saved-app"]
    assert [t.phase for _, t in transitions] == [ModelPhase.LOADING, ModelPhase.READY]


def test_chooser_picks_existing_model() -> None:
    models = [ModelSummary(model_ref="app-1", name="Adventure")]
    client = FakeClient(models)
    store = FakeStore()
    lifecycle, dispatch, transitions, _ = _make(client, store, FakeChooser("app-1"))

    future = lifecycle.ensure_ready()
    assert lifecycle.state.phase == ModelPhase.SELECTING
    dispatch.run_all()

    assert future.result().model_ref == "app-1"
    assert store.writes == ["app-1"]
    assert client.created == []
    assert [t.phase for _, t in transitions] == [
        ModelPhase.SELECTING,
        ModelPhase.LOADING,
        ModelPhase.READY,
    ]


def test_create_new_runs_full_provisioning_pipeline() -> None:
    client = FakeClient()
    store = FakeStore()
    lifecycle, dispatch, transitions, _ = _make(client, store, FakeChooser(None))

    future = lifecycle.ensure_ready()
    dispatch.run_all()

    assert future.result().ready is True
    assert future.result().model_ref == "new-app"
    assert client.next_handle.steps == ["load_data", "start_training", "wait", "publish"]
    assert [t.stage for _, t in transitions if t.phase == ModelPhase.PROVISIONING] == [
        ProvisionStage.CREATED,
        ProvisionStage.TRAINING,
        ProvisionStage.PUBLISHED,
    ]
    assert store.writes == ["new-app"]
    assert lifecycle.discovered_intents() == ["Help", "Pick up"]
    assert lifecycle.discovered_entities() == ["tool", "object"]


def test_concurrent_callers_during_training_share_one_pipeline() -> None:
    client = FakeClient()
    lifecycle, dispatch, _, _ = _make(client, FakeStore(), FakeChooser(None))
    late_callers = []

    def arrive_during_training() -> None:
        assert lifecycle.state == ModelState(
            ModelPhase.PROVISIONING, model_ref="new-app", stage=ProvisionStage.TRAINING
        )
        late_callers.append(lifecycle.ensure_ready())
        late_callers.append(lifecycle.ensure_ready())
        assert lifecycle.waiter_count == 3

    client.next_handle.on_training = arrive_during_training

    first = lifecycle.ensure_ready()
    dispatch.run_all()

    outcomes = [first.result(), *(f.result() for f in late_callers)]
    assert {o.model_ref for o in outcomes} == {"new-app"}
    assert all(o.ready for o in outcomes)
    assert len(client.created) == 1
    assert dispatch.jobs == []
    assert lifecycle.waiter_count == 0


def test_waiters_are_released_in_arrival_order() -> None:
    lifecycle, dispatch, _, _ = _make(FakeClient(), FakeStore("saved"), None)
    order: list[int] = []

    for i in range(3):
        lifecycle.ensure_ready().add_done_callback(lambda _f, i=i: order.append(i))
    dispatch.run_all()

    assert order == [0, 1, 2]


def test_training_failure_fails_every_waiter() -> None:
    client = FakeClient()
    client.next_handle = FakeHandle("new-app", fail_at="wait")
    lifecycle, dispatch, _, errors = _make(client, FakeStore(), FakeChooser(None))

    first = lifecycle.ensure_ready()
    second = lifecycle.ensure_ready()
    dispatch.run_all()

    assert first.result().ready is False
    assert first.result() == second.result()
    assert "training" in first.result().reason
    assert lifecycle.state.phase == ModelPhase.FAILED
    assert lifecycle.model_ref is None
    assert errors[0][0] == PROVISIONING_FAILED


def test_failed_state_resolves_immediately_without_new_pipeline() -> None:
    client = FakeClient()
    client.load_error = SenseError(NETWORK_ERROR, "connection refused")
    lifecycle, dispatch, _, _ = _make(client, FakeStore("saved"), None)
    lifecycle.ensure_ready()
    dispatch.run_all()

    again = lifecycle.ensure_ready()

    assert again.done()
    assert again.result().ready is False
    assert dispatch.jobs == []
    assert client.loaded == ["saved"]


def test_ready_state_resolves_immediately() -> None:
    lifecycle, dispatch, _, _ = _make(FakeClient(), FakeStore("saved"), None)
    lifecycle.ensure_ready()
    dispatch.run_all()

    again = lifecycle.ensure_ready()

    assert again.done()
    assert again.result().model_ref == "saved"
    assert dispatch.jobs == []


def test_persisted_ref_not_written_on_failure() -> None:
    client = FakeClient()
    client.next_handle = FakeHandle("new-app", fail_at="publish")
    store = FakeStore()
    lifecycle, dispatch, _, _ = _make(client, store, FakeChooser(None))

    lifecycle.ensure_ready()
    dispatch.run_all()

    assert store.writes == []


def test_reset_reenters_unselected_and_rereads_store() -> None:
    client = FakeClient()
    client.load_error = SenseError(NETWORK_ERROR, "timeout")
    store = FakeStore("saved")
    lifecycle, dispatch, _, _ = _make(client, store, None)
    lifecycle.ensure_ready()
    dispatch.run_all()
    assert lifecycle.state.phase == ModelPhase.FAILED

    client.load_error = None
    store.model_ref = "fixed"
    assert lifecycle.reset() is True
    assert lifecycle.state.phase == ModelPhase.UNSELECTED

    future = lifecycle.ensure_ready()
    dispatch.run_all()
    assert future.result().model_ref == "fixed"


def test_reset_refused_while_resolving() -> None:
    lifecycle, dispatch, _, _ = _make(FakeClient(), FakeStore("saved"), None)
    future = lifecycle.ensure_ready()

    assert lifecycle.reset() is False
    assert lifecycle.state.phase == ModelPhase.LOADING

    dispatch.run_all()
    assert future.result().ready is True


def test_no_chooser_creates_new_model() -> None:
    client = FakeClient([ModelSummary(model_ref="app-1")])
    lifecycle, dispatch, _, _ = _make(client, None, None)

    future = lifecycle.ensure_ready()
    dispatch.run_all()

    assert future.result().model_ref == "new-app"
    assert len(client.created) == 1
