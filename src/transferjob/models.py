from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path


class Phase(str, Enum):
    CLEANING = "cleaning"
    UPLOADING = "uploading"
    TRIGGERING = "triggering"
    POLLING = "polling"

    @property
    def order(self) -> int:
        return list(Phase).index(self)

    def __lt__(self, other: object) -> bool:
        if not isinstance(other, Phase):
            return NotImplemented
        return self.order < other.order

    def __le__(self, other: object) -> bool:
        if not isinstance(other, Phase):
            return NotImplemented
        return self.order <= other.order

    def __gt__(self, other: object) -> bool:
        if not isinstance(other, Phase):
            return NotImplemented
        return self.order > other.order

    def __ge__(self, other: object) -> bool:
        if not isinstance(other, Phase):
            return NotImplemented
        return self.order >= other.order


@dataclass(frozen=True, slots=True)
class Credentials:
    host: str
    port: int
    username: str
    password: str = field(repr=False)


@dataclass(frozen=True, slots=True)
class SettingsSnapshot:
    host: str
    port: int
    username: str
    password: str = field(repr=False)
    api_base_url: str = ""
    api_token: str = field(default="", repr=False)

    def credentials(self) -> Credentials:
        return Credentials(
            host=self.host,
            port=self.port,
            username=self.username,
            password=self.password,
        )


@dataclass(frozen=True, slots=True)
class Idle:
    pass


@dataclass(frozen=True, slots=True)
class Ready:
    path: Path


@dataclass(frozen=True, slots=True)
class Running:
    phase: Phase
    progress: float
    filename: str


@dataclass(frozen=True, slots=True)
class Done:
    result_url: str


@dataclass(frozen=True, slots=True)
class Failed:
    message: str


JobState = Idle | Ready | Running | Done | Failed


def describe_state(state: JobState) -> str:
    if isinstance(state, Idle):
        return "idle"
    if isinstance(state, Ready):
        return f"ready: {state.path.name}"
    if isinstance(state, Running):
        return f"{state.phase.value} {int(state.progress * 100)}%: {state.filename}"
    if isinstance(state, Done):
        return f"done: {state.result_url}"
    if isinstance(state, Failed):
        return f"failed: {state.message}"
    raise TypeError(f"Unknown job state: {state!r}")


@dataclass(slots=True)
class RemoteFileEntry:
    name: str
    is_dir: bool


@dataclass(slots=True)
class StartResponse:
    job_id: str
    status_url: str | None = None


@dataclass(slots=True)
class StatusResponse:
    state: str
    url: str | None = None
    message: str | None = None


@dataclass(frozen=True, slots=True)
class PipelineEvent:
    run_id: int
    kind: str
    phase: Phase | None = None
    progress: float | None = None
    message: str | None = None
