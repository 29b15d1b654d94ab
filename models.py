"""Core data models shared by the senses."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional


class ListeningState(str, Enum):
    ACTIVE = "ACTIVE"
    SUPPRESSED_FOR_SYNTHESIS = "SUPPRESSED_FOR_SYNTHESIS"


class ModelPhase(str, Enum):
    UNSELECTED = "UNSELECTED"
    SELECTING = "SELECTING"
    LOADING = "LOADING"
    PROVISIONING = "PROVISIONING"
    READY = "READY"
    FAILED = "FAILED"


class ProvisionStage(str, Enum):
    CREATED = "CREATED"
    TRAINING = "TRAINING"
    PUBLISHED = "PUBLISHED"


class BlockType(str, Enum):
    COMMAND = "command"
    HAT = "hat"
    REPORTER = "reporter"


class TranscriptKind(str, Enum):
    PARTIAL = "partial"
    FINAL = "final"
    ERROR = "error"


IN_PROGRESS_PHASES = frozenset({ModelPhase.SELECTING, ModelPhase.LOADING, ModelPhase.PROVISIONING})


@dataclass(frozen=True)
class ModelState:
    phase: ModelPhase = ModelPhase.UNSELECTED
    model_ref: Optional[str] = None
    stage: Optional[ProvisionStage] = None
    reason: str = ""

    @property
    def in_progress(self) -> bool:
        return self.phase in IN_PROGRESS_PHASES

    @property
    def ready_ref(self) -> Optional[str]:
        """The model ref, exposed only once the model is usable."""
        return self.model_ref if self.phase == ModelPhase.READY else None

    def __str__(self) -> str:
        if self.phase == ModelPhase.PROVISIONING:
            return f"{self.phase.value}({self.stage.value if self.stage else '?'})"
        if self.phase in (ModelPhase.LOADING, ModelPhase.READY):
            return f"{self.phase.value}({self.model_ref})"
        if self.phase == ModelPhase.FAILED:
            return f"{self.phase.value}({self.reason})"
        return self.phase.value


@dataclass(frozen=True)
class ModelOutcome:
    ready: bool
    model_ref: Optional[str] = None
    reason: str = ""


@dataclass(frozen=True)
class ModelSummary:
    model_ref: str
    name: str = ""
    description: str = ""


@dataclass(frozen=True)
class Entity:
    type: str
    entity: str


@dataclass(frozen=True)
class Recognition:
    intent: str
    entities: tuple[Entity, ...] = ()
    query: str = ""
    score: float = 0.0

    def entity(self, entity_type: str) -> str:
        for item in self.entities:
            if item.type == entity_type:
                return item.entity
        return ""


@dataclass
class AudioFrame:
    pcm16_bytes: bytes
    sample_rate: int = 16000
    channels: int = 1
    timestamp_ms: int = 0


@dataclass
class TranscriptEvent:
    kind: str
    alternatives: list[str] = field(default_factory=list)
    code: str = ""
    message: str = ""

    @property
    def text(self) -> str:
        return self.alternatives[0] if self.alternatives else ""


@dataclass(frozen=True)
class MenuItem:
    text: str
    value: str


@dataclass(frozen=True)
class BlockSpec:
    opcode: str
    block_type: BlockType
    text: str
    arguments: dict = field(default_factory=dict)
    edge_triggered: bool = False


@dataclass(frozen=True)
class ExtensionInfo:
    id: str
    name: str
    blocks: tuple[BlockSpec, ...]
    menus: dict = field(default_factory=dict)

    def hats(self) -> list[BlockSpec]:
        return [block for block in self.blocks if block.block_type == BlockType.HAT]
