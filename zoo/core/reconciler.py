"""Ordered per-submission result collection.

Purpose of this abstraction:
    Keep one list per submission whose positions never move, even though tasks
    complete in any order. Each position holds one of three tagged entries:

    - `PendingSlot`: dispatched, not settled. Carries the model tag and the
      latest in-flight snapshot (async jobs report `starting`/`processing`).
    - `ResolvedPrediction`: settled with a Prediction. Re-opened submissions
      hold only these, whatever the stored status.
    - `FailedSlot`: the task rejected, or the provider reported `failed`;
      carries the error message.

    Resolution swaps the entry at the slot's index. Failures stay visible as
    `FailedSlot` instead of being dropped, and their messages are also kept in
    `errors` in arrival order.

Concurrency:
    Mutated only from the orchestrating event loop; no lock is taken. A
    threaded caller must serialize `add_pending`/`resolve`/`fail` itself.
"""

import itertools
from dataclasses import dataclass, field
from typing import Union

from zoo.core.errors import ProtocolError
from zoo.core.models import Prediction, ProviderKind


@dataclass(frozen=True)
class SlotTag:
    """Identity of the work a slot stands for, known before the network call."""

    model: str
    source: ProviderKind
    version: str
    output_index: int = 0


@dataclass
class PendingSlot:
    slot_id: int
    tag: SlotTag
    snapshot: Prediction | None = None

    kind = "pending"


@dataclass
class ResolvedPrediction:
    slot_id: int
    tag: SlotTag
    prediction: Prediction

    kind = "resolved"


@dataclass
class FailedSlot:
    slot_id: int
    tag: SlotTag
    error: str
    prediction: Prediction | None = None

    kind = "failed"


Entry = Union[PendingSlot, ResolvedPrediction, FailedSlot]


def tag_for(prediction: Prediction) -> SlotTag:
    return SlotTag(model=prediction.model, source=prediction.source, version=prediction.version)


@dataclass
class ResultCollection:
    """Insertion-ordered entries for one submission."""

    submission_id: str
    prompt: str = ""
    entries: list[Entry] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)
    _index: dict[int, int] = field(default_factory=dict, repr=False)
    _ids: itertools.count = field(default_factory=itertools.count, repr=False)

    def __len__(self) -> int:
        return len(self.entries)

    def __iter__(self):
        return iter(self.entries)

    # =========================================================
    # Mutation
    # =========================================================

    def add_pending(self, tag: SlotTag) -> int:
        """Append a placeholder and return its stable slot id."""
        slot_id = next(self._ids)
        self._index[slot_id] = len(self.entries)
        self.entries.append(PendingSlot(slot_id=slot_id, tag=tag))
        return slot_id

    def add_resolved(self, prediction: Prediction) -> int:
        """Append an already-settled prediction (re-opened submissions)."""
        slot_id = next(self._ids)
        self._index[slot_id] = len(self.entries)
        self.entries.append(ResolvedPrediction(slot_id=slot_id, tag=tag_for(prediction), prediction=prediction))
        return slot_id

    def observe(self, slot_id: int, prediction: Prediction) -> None:
        """Record an in-flight snapshot on a still-pending slot."""
        entry = self._pending(slot_id)
        entry.snapshot = prediction

    def resolve(self, slot_id: int, prediction: Prediction) -> None:
        entry = self._pending(slot_id)
        self.entries[self._index[slot_id]] = ResolvedPrediction(
            slot_id=slot_id, tag=entry.tag, prediction=prediction
        )

    def fail(self, slot_id: int, error: str, prediction: Prediction | None = None) -> None:
        entry = self._pending(slot_id)
        self.entries[self._index[slot_id]] = FailedSlot(
            slot_id=slot_id,
            tag=entry.tag,
            error=error,
            prediction=prediction if prediction is not None else entry.snapshot,
        )
        self.errors.append(error)

    def _pending(self, slot_id: int) -> PendingSlot:
        try:
            entry = self.entries[self._index[slot_id]]
        except KeyError:
            raise ProtocolError(f"Unknown slot {slot_id} in submission {self.submission_id}") from None
        if not isinstance(entry, PendingSlot):
            raise ProtocolError(f"Slot {slot_id} in submission {self.submission_id} is already {entry.kind}")
        return entry

    # =========================================================
    # Views
    # =========================================================

    def entry(self, slot_id: int) -> Entry:
        return self.entries[self._index[slot_id]]

    def pending(self) -> list[PendingSlot]:
        return [entry for entry in self.entries if isinstance(entry, PendingSlot)]

    def predictions(self) -> list[Prediction]:
        """Settled predictions in insertion order."""
        return [entry.prediction for entry in self.entries if isinstance(entry, ResolvedPrediction)]

    def is_complete(self) -> bool:
        """True when no slot is pending and every resolved prediction is terminal."""
        for entry in self.entries:
            if isinstance(entry, PendingSlot):
                return False
            if isinstance(entry, ResolvedPrediction) and not entry.prediction.is_terminal:
                return False
        return True
