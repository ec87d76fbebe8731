"""Presets — ordered phase cycles and the JSON file they live in."""

from __future__ import annotations

import fcntl
import json
import logging
import secrets
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)

_PRESETS_FILE = "presets.json"

MIN_DURATION_MINUTES = 1
MAX_DURATION_MINUTES = 180


class PresetError(ValueError):
    """Raised when a preset or phase fails validation at the editing boundary."""


def generate_id() -> str:
    """Return a random opaque id for a phase or preset."""
    return secrets.token_hex(8)


@dataclass(frozen=True)
class Phase:
    """One timed segment of a preset."""

    id: str
    name: str
    duration_minutes: int
    order: int = 0
    start_time: str | None = None  # advisory "HH:MM" anchor

    @property
    def duration_seconds(self) -> int:
        return self.duration_minutes * 60

    def validate(self) -> None:
        """Raise :class:`PresetError` if the phase cannot be saved."""
        if not self.name.strip():
            raise PresetError("phase name must not be empty")
        if not isinstance(self.duration_minutes, int) or isinstance(self.duration_minutes, bool):
            raise PresetError(
                f"duration must be an integer, got {type(self.duration_minutes).__name__}"
            )
        if not (MIN_DURATION_MINUTES <= self.duration_minutes <= MAX_DURATION_MINUTES):
            raise PresetError(
                f"duration must be between {MIN_DURATION_MINUTES} and "
                f"{MAX_DURATION_MINUTES} minutes, got {self.duration_minutes}"
            )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "durationMinutes": self.duration_minutes,
            "order": self.order,
            "startTime": self.start_time,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Phase:
        return cls(
            id=str(data.get("id") or generate_id()),
            name=str(data.get("name", "")),
            duration_minutes=int(data["durationMinutes"]),
            order=int(data.get("order", 0)),
            start_time=data.get("startTime"),
        )


def default_phases() -> list[Phase]:
    """The Work/Break pair every new preset starts with."""
    return [
        Phase(id=generate_id(), name="Work", duration_minutes=25, order=0),
        Phase(id=generate_id(), name="Break", duration_minutes=5, order=1),
    ]


def renumber(phases: list[Phase]) -> list[Phase]:
    """Return *phases* with ``order`` matching list position."""
    return [replace(phase, order=index) for index, phase in enumerate(phases)]


@dataclass(frozen=True)
class Preset:
    """A named, ordered cycle of phases."""

    id: str
    name: str
    phases: tuple[Phase, ...] = field(default_factory=tuple)
    loop_phases: bool = False
    color: str | None = None
    order: int = 0

    @property
    def can_activate(self) -> bool:
        return len(self.phases) > 0

    def phase_at(self, index: int) -> Phase | None:
        if 0 <= index < len(self.phases):
            return self.phases[index]
        return None

    def validate(self) -> None:
        if not self.name.strip():
            raise PresetError("preset name must not be empty")
        if not self.phases:
            raise PresetError("preset needs at least one phase")
        for phase in self.phases:
            phase.validate()

    def with_phases(self, phases: list[Phase]) -> Preset:
        return replace(self, phases=tuple(renumber(phases)))

    def append_phase(self, phase: Phase) -> Preset:
        return self.with_phases([*self.phases, phase])

    def remove_phase(self, phase_id: str) -> Preset:
        return self.with_phases([p for p in self.phases if p.id != phase_id])

    def move_phase(self, old_index: int, new_index: int) -> Preset:
        phases = list(self.phases)
        phases.insert(new_index, phases.pop(old_index))
        return self.with_phases(phases)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "phases": [phase.to_dict() for phase in self.phases],
            "loopPhases": self.loop_phases,
            "color": self.color,
            "order": self.order,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Preset:
        """Build a preset from its stored form, migrating legacy records."""
        raw_phases = data.get("phases") or []
        preset = cls(
            id=str(data["id"]),
            name=str(data.get("name", "")),
            phases=tuple(
                sorted((Phase.from_dict(p) for p in raw_phases), key=lambda p: p.order)
            ),
            loop_phases=bool(data.get("loopPhases", False)),
            color=data.get("color"),
            order=int(data.get("order", 0)),
        )
        if preset.phases:
            return preset
        return _migrate_legacy(preset, data)


def _migrate_legacy(preset: Preset, data: dict[str, Any]) -> Preset:
    """Convert an old work/break preset into the phase-list form."""
    phases: list[Phase] = []
    if data.get("workMinutes") is not None:
        phases.append(
            Phase(
                id=generate_id(),
                name="Work",
                duration_minutes=int(data["workMinutes"]),
                start_time=data.get("scheduledStart"),
            )
        )
    if data.get("breakMinutes") is not None:
        phases.append(
            Phase(id=generate_id(), name="Break", duration_minutes=int(data["breakMinutes"]))
        )
    if not phases:
        phases = default_phases()
    logger.info("Migrated legacy preset %s to %d phases", preset.id, len(phases))
    return replace(preset, phases=tuple(renumber(phases)), loop_phases=False)


class PresetStore:
    """Presets persisted as a single JSON document in the config directory."""

    def __init__(self, config_dir: Path) -> None:
        self._path = config_dir / _PRESETS_FILE

    def list_presets(self) -> list[Preset]:
        if not self._path.exists():
            return []
        try:
            with open(self._path) as f:
                fcntl.flock(f, fcntl.LOCK_SH)
                data = json.load(f)
            presets = [Preset.from_dict(item) for item in data.get("presets", [])]
        except (AttributeError, KeyError, TypeError, ValueError) as exc:
            raise PresetError(f"{self._path} is corrupt: {exc!r}") from exc
        return sorted(presets, key=lambda p: p.order)

    def get(self, preset_id: str | None) -> Preset | None:
        if preset_id is None:
            return None
        for preset in self.list_presets():
            if preset.id == preset_id:
                return preset
        return None

    def add(self, preset: Preset) -> Preset:
        preset.validate()
        presets = self.list_presets()
        preset = replace(preset, order=len(presets))
        self._write([*presets, preset])
        return preset

    def remove(self, preset_id: str) -> None:
        presets = self.list_presets()
        remaining = [p for p in presets if p.id != preset_id]
        if len(remaining) == len(presets):
            raise PresetError(f"no preset with id {preset_id}")
        self._write([replace(p, order=i) for i, p in enumerate(remaining)])

    def _write(self, presets: list[Preset]) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        with open(self._path, "w") as f:
            fcntl.flock(f, fcntl.LOCK_EX)
            json.dump({"presets": [p.to_dict() for p in presets]}, f, indent=2)
