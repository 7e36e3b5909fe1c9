from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Tuple


class ReplayError(RuntimeError):
    pass


@dataclass
class CommandRecord:
    """One accepted command plus the non-deterministic values it consumed."""

    seq: int
    kind: str
    args: Dict[str, Any]
    effects: List[Tuple[str, Any]] = field(default_factory=list)


class EffectRecorder:
    """Capture-once boundary for randomness and wall-clock reads.

    Live: run the producer and write the value into the record.
    Replay: hand back the recorded value; the producer is never called.
    """

    def __init__(self, record: CommandRecord, replaying: bool = False) -> None:
        self.record = record
        self.replaying = replaying
        self._cursor = 0

    @classmethod
    def live(cls, record: CommandRecord) -> "EffectRecorder":
        return cls(record, replaying=False)

    @classmethod
    def replay(cls, record: CommandRecord) -> "EffectRecorder":
        return cls(record, replaying=True)

    def capture(self, name: str, producer: Callable[[], Any]) -> Any:
        if not self.replaying:
            value = producer()
            self.record.effects.append((name, value))
            return value
        if self._cursor >= len(self.record.effects):
            raise ReplayError(f"no recorded effect '{name}' for command {self.record.seq} ({self.record.kind})")
        recorded_name, value = self.record.effects[self._cursor]
        if recorded_name != name:
            raise ReplayError(
                f"effect mismatch for command {self.record.seq}: expected '{recorded_name}', got '{name}'"
            )
        self._cursor += 1
        return value
