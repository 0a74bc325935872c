"""Durable prediction records, keyed by prediction id.

Purpose of this abstraction:
    The orchestrator and the webhook route write every initial and terminal
    Prediction here; re-opened submissions read back from here. Records outlive
    any orchestrator run and are retrievable by submission id indefinitely.

Contract:
    - `upsert(prediction)` is idempotent by `id`: writing the same id twice
      leaves one record, holding the latest values.
    - A write never moves a stored record backwards. Two writers (the polling
      task and the webhook route) may race on one id; an update with a lower
      status rank, or one that leaves a terminal status, is dropped.
    - `list_by_submission(submission_id)` returns records in first-insert order.
    - Returned objects are copies; mutating them never changes stored state.

Implementations:
    - `InMemoryPredictionStore`: process-local dict, for tests and ephemeral runs.
    - `JsonPredictionStore`: same dict mirrored to one JSON file per
      submission, guarded by a `threading.Lock` because writes arrive from
      worker threads and FastAPI's threadpool.
"""

import json
import logging
import os
import threading
from typing import Protocol
from urllib.parse import quote

from pydantic import ValidationError

from zoo.core.models import Prediction


logger = logging.getLogger(__name__)


class PredictionStore(Protocol):
    def upsert(self, prediction: Prediction) -> None:
        ...

    def get(self, prediction_id: str) -> Prediction | None:
        ...

    def list_by_submission(self, submission_id: str) -> list[Prediction]:
        ...


def supersedes(incoming: Prediction, stored: Prediction) -> bool:
    """Whether `incoming` may replace `stored` for the same id."""
    if stored.is_terminal:
        return incoming.status == stored.status
    return incoming.status.rank >= stored.status.rank


class InMemoryPredictionStore:
    """Dict-backed store; insertion order of first upsert is preserved."""

    def __init__(self) -> None:
        self._records: dict[str, Prediction] = {}
        self._lock = threading.Lock()

    def upsert(self, prediction: Prediction) -> None:
        with self._lock:
            stored = self._records.get(prediction.id)
            if stored is not None and not supersedes(prediction, stored):
                logger.debug(
                    "Keeping stored %s record for %s over %s update",
                    stored.status.value,
                    prediction.id,
                    prediction.status.value,
                )
                return
            self._records[prediction.id] = prediction.model_copy(deep=True)
            self._on_write(prediction.submission_id)

    def get(self, prediction_id: str) -> Prediction | None:
        with self._lock:
            record = self._records.get(prediction_id)
            return record.model_copy(deep=True) if record is not None else None

    def list_by_submission(self, submission_id: str) -> list[Prediction]:
        with self._lock:
            return [record.model_copy(deep=True) for record in self._submission_records(submission_id)]

    def __len__(self) -> int:
        return len(self._records)

    def _submission_records(self, submission_id: str) -> list[Prediction]:
        return [record for record in self._records.values() if record.submission_id == submission_id]

    def _on_write(self, submission_id: str) -> None:
        """Hook for write-through subclasses; called with the lock held."""


class JsonPredictionStore(InMemoryPredictionStore):
    """Write-through store with one JSON file per submission.

    Layout:
        `<directory>/<submission id>.json` holds that submission's records as a
        JSON list in first-insert order. The id is percent-encoded, so ids
        taken from webhook query params cannot escape the directory.

    Side effects:
        - Reads every `*.json` file in `directory` once at construction.
        - On upsert, atomically rewrites only the touched submission's file
          (temp file + `os.replace`), so a write costs one submission, not the
          whole store.

    Failure handling:
        A corrupt file is logged and skipped; entries that fail validation are
        skipped individually.
    """

    def __init__(self, directory: str) -> None:
        super().__init__()
        self.directory = directory
        self._load()

    def path_for(self, submission_id: str) -> str:
        return os.path.join(self.directory, f"{quote(submission_id, safe='')}.json")

    def _load(self) -> None:
        if not os.path.isdir(self.directory):
            return

        for filename in sorted(os.listdir(self.directory)):
            if not filename.endswith(".json"):
                continue
            path = os.path.join(self.directory, filename)
            try:
                with open(path, "r", encoding="utf-8") as f:
                    data = json.load(f)
            except (OSError, json.JSONDecodeError):
                logger.exception("Failed to load predictions from %s", path)
                continue

            if not isinstance(data, list):
                logger.warning("Ignoring prediction file %s: expected a JSON list", path)
                continue

            for item in data:
                try:
                    prediction = Prediction.model_validate(item)
                except ValidationError:
                    logger.warning("Skipping invalid stored prediction in %s: %r", path, item)
                    continue
                self._records[prediction.id] = prediction

        logger.info("Loaded %d stored prediction(s) from %s", len(self._records), self.directory)

    def _on_write(self, submission_id: str) -> None:
        os.makedirs(self.directory, exist_ok=True)

        payload = [record.model_dump(mode="json") for record in self._submission_records(submission_id)]
        path = self.path_for(submission_id)
        tmp_path = f"{path}.tmp"
        with open(tmp_path, "w", encoding="utf-8") as f:
            json.dump(payload, f, indent=2, ensure_ascii=False)
        os.replace(tmp_path, path)
