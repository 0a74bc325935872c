"""Read-side helpers over a submission's predictions.

These mirror what a results page needs when it re-opens a submission: the
prompt that produced it, which models were used, per-model rows, and whether
anything is still running.
"""

from zoo.core.models import Prediction, PredictionStatus
from zoo.core.reconciler import FailedSlot, PendingSlot, ResolvedPrediction, ResultCollection


def prompt_from_predictions(predictions: list[Prediction]) -> str:
    """Prompt of the first prediction, or an empty string."""
    if not predictions:
        return ""
    return predictions[0].prompt


def model_names_from_predictions(predictions: list[Prediction]) -> list[str]:
    """Distinct model names in first-seen order."""
    names: list[str] = []
    for prediction in predictions:
        if prediction.model not in names:
            names.append(prediction.model)
    return names


def predictions_by_version(predictions: list[Prediction], version: str) -> list[Prediction]:
    """Predictions for one model version, newest first."""
    return [p for p in reversed(predictions) if p.version == version]


def predictions_still_running(predictions: list[Prediction]) -> bool:
    return any(not p.is_terminal for p in predictions)


def failed_predictions(predictions: list[Prediction]) -> list[Prediction]:
    return [p for p in predictions if p.status == PredictionStatus.FAILED]


def serialize_collection(collection: ResultCollection) -> dict:
    """JSON-ready representation of a collection, one item per slot in order.

    Pending slots expose their latest snapshot status (`starting` before the
    first provider response), failed slots expose the error message.
    """
    items = []
    for entry in collection.entries:
        item = {
            "slot": entry.kind,
            "model": entry.tag.model,
            "source": entry.tag.source.value,
            "version": entry.tag.version,
            "output_index": entry.tag.output_index,
        }
        if isinstance(entry, PendingSlot):
            snapshot = entry.snapshot
            item["status"] = snapshot.status.value if snapshot else PredictionStatus.STARTING.value
            item["prediction"] = snapshot.model_dump(mode="json") if snapshot else None
        elif isinstance(entry, ResolvedPrediction):
            item["status"] = entry.prediction.status.value
            item["prediction"] = entry.prediction.model_dump(mode="json")
        elif isinstance(entry, FailedSlot):
            item["status"] = PredictionStatus.FAILED.value
            item["error"] = entry.error
            item["prediction"] = entry.prediction.model_dump(mode="json") if entry.prediction else None
        items.append(item)

    settled = [e.prediction for e in collection.entries if getattr(e, "prediction", None) is not None]
    return {
        "submission_id": collection.submission_id,
        "prompt": collection.prompt or prompt_from_predictions(settled),
        "done": collection.is_complete(),
        "errors": list(collection.errors),
        "predictions": items,
    }
