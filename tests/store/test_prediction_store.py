import json

import pytest

from zoo.core.models import Prediction, PredictionStatus, ProviderKind
from zoo.store.prediction_store import InMemoryPredictionStore, JsonPredictionStore, supersedes


def _prediction(prediction_id, submission_id="s1"):
    return Prediction(
        id=prediction_id,
        submission_id=submission_id,
        model="SDXL",
        source=ProviderKind.REPLICATE,
        version="v1",
        input={"prompt": "a red fox"},
        anon_id="anon-1",
    )


def _with_status(status):
    prediction = _prediction("p1")
    if status == PredictionStatus.SUCCEEDED:
        prediction.advance(status, output=["https://x/p1.png"])
    elif status != PredictionStatus.STARTING:
        prediction.advance(status)
    return prediction


def test_upsert_is_idempotent_by_id():
    store = InMemoryPredictionStore()
    prediction = _prediction("p1")
    store.upsert(prediction)

    prediction.advance(PredictionStatus.SUCCEEDED, output=["https://x/p1.png"])
    store.upsert(prediction)

    assert len(store) == 1
    assert store.get("p1").status == PredictionStatus.SUCCEEDED


def test_returned_records_are_copies():
    store = InMemoryPredictionStore()
    prediction = _prediction("p1")
    store.upsert(prediction)

    prediction.advance(PredictionStatus.PROCESSING)
    fetched = store.get("p1")
    fetched.advance(PredictionStatus.FAILED, error="local only")

    assert store.get("p1").status == PredictionStatus.STARTING


def test_list_by_submission_keeps_first_insert_order():
    store = InMemoryPredictionStore()
    for prediction_id, submission_id in [("a", "s1"), ("b", "s2"), ("c", "s1")]:
        store.upsert(_prediction(prediction_id, submission_id))
    store.upsert(_prediction("a", "s1"))

    assert [p.id for p in store.list_by_submission("s1")] == ["a", "c"]
    assert store.list_by_submission("missing") == []
    assert store.get("missing") is None

def test_stale_status_does_not_overwrite_newer_record():
    store = InMemoryPredictionStore()
    processing = _prediction("p1")
    processing.advance(PredictionStatus.PROCESSING)
    store.upsert(processing)

    store.upsert(_prediction("p1"))

    assert store.get("p1").status == PredictionStatus.PROCESSING


def test_terminal_record_is_not_replaced_by_other_status():
    store = InMemoryPredictionStore()
    done = _prediction("p1")
    done.advance(PredictionStatus.SUCCEEDED, output=["https://x/p1.png"])
    store.upsert(done)

    failed = _prediction("p1")
    failed.advance(PredictionStatus.FAILED, error="late failure")
    store.upsert(failed)
    store.upsert(_prediction("p1"))

    stored = store.get("p1")
    assert stored.status == PredictionStatus.SUCCEEDED
    assert stored.output == ["https://x/p1.png"]


def test_same_status_update_overwrites_fields():
    store = InMemoryPredictionStore()
    store.upsert(_prediction("p1"))

    store.upsert(_prediction("p1").model_copy(update={"version": "v2"}))

    assert store.get("p1").version == "v2"


@pytest.mark.parametrize(
    "incoming, stored, expected",
    [
        (PredictionStatus.PROCESSING, PredictionStatus.STARTING, True),
        (PredictionStatus.STARTING, PredictionStatus.PROCESSING, False),
        (PredictionStatus.SUCCEEDED, PredictionStatus.SUCCEEDED, True),
        (PredictionStatus.FAILED, PredictionStatus.SUCCEEDED, False),
        (PredictionStatus.FAILED, PredictionStatus.PROCESSING, True),
    ],
)
def test_supersedes(incoming, stored, expected):
    assert supersedes(_with_status(incoming), _with_status(stored)) is expected


def test_json_store_survives_reload(tmp_path):
    directory = tmp_path / "data" / "predictions"
    store = JsonPredictionStore(str(directory))
    done = _prediction("p1")
    done.advance(PredictionStatus.SUCCEEDED, output=["https://x/p1.png"])
    store.upsert(done)
    store.upsert(_prediction("p2"))

    reloaded = JsonPredictionStore(str(directory))

    assert [p.id for p in reloaded.list_by_submission("s1")] == ["p1", "p2"]
    restored = reloaded.get("p1")
    assert restored == done
    assert restored.created_at == done.created_at
    assert sorted(path.name for path in directory.iterdir()) == ["s1.json"]


def test_json_store_writes_one_file_per_submission(tmp_path):
    store = JsonPredictionStore(str(tmp_path))
    store.upsert(_prediction("a", "s1"))
    store.upsert(_prediction("b", "s2"))
    untouched = (tmp_path / "s2.json").read_text()

    store.upsert(_prediction("c", "s1"))

    assert [item["id"] for item in json.loads((tmp_path / "s1.json").read_text())] == ["a", "c"]
    assert (tmp_path / "s2.json").read_text() == untouched


def test_json_store_keeps_submission_ids_inside_directory(tmp_path):
    directory = tmp_path / "predictions"
    store = JsonPredictionStore(str(directory))

    store.upsert(_prediction("p1", "../escape"))

    assert not (tmp_path / "escape.json").exists()
    assert [path.name for path in directory.iterdir()] == ["..%2Fescape.json"]
    assert JsonPredictionStore(str(directory)).get("p1").submission_id == "../escape"


def test_json_store_skips_invalid_entries(tmp_path):
    valid = _prediction("ok").model_dump(mode="json")
    invalid = dict(valid, id="bad", status="succeeded", output=[])
    (tmp_path / "s1.json").write_text(json.dumps([valid, invalid, {"nonsense": True}]))
    (tmp_path / "s2.json").write_text(json.dumps({"id": "not-a-list"}))

    store = JsonPredictionStore(str(tmp_path))

    assert len(store) == 1
    assert store.get("ok") is not None


def test_json_store_tolerates_corrupt_file(tmp_path):
    (tmp_path / "s1.json").write_text("{not json")
    (tmp_path / "s2.json").write_text(json.dumps([_prediction("p2", "s2").model_dump(mode="json")]))

    store = JsonPredictionStore(str(tmp_path))
    assert [p.id for p in store.list_by_submission("s2")] == ["p2"]

    store.upsert(_prediction("p1"))
    assert [item["id"] for item in json.loads((tmp_path / "s1.json").read_text())] == ["p1"]
