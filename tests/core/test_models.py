import pytest
from pydantic import ValidationError

from zoo.core.errors import ProtocolError
from zoo.core.models import GenerationRequest, ModelDescriptor, Prediction, PredictionStatus, ProviderKind


def _prediction(**overrides):
    fields = dict(id="p1", submission_id="s1", model="SDXL", source=ProviderKind.REPLICATE, input={"prompt": "a cat"})
    fields.update(overrides)
    return Prediction(**fields)


def test_new_prediction_starts_without_output():
    prediction = _prediction()
    assert prediction.status == PredictionStatus.STARTING
    assert prediction.output == []
    assert prediction.prompt == "a cat"
    assert not prediction.is_terminal


def test_succeeded_requires_output_at_construction():
    with pytest.raises(ValidationError):
        _prediction(status=PredictionStatus.SUCCEEDED)


def test_non_succeeded_rejects_output_at_construction():
    with pytest.raises(ValidationError):
        _prediction(status=PredictionStatus.PROCESSING, output=["https://x/1.png"])


def test_identity_fields_are_frozen():
    prediction = _prediction()
    with pytest.raises(ValidationError):
        prediction.id = "other"
    with pytest.raises(ValidationError):
        prediction.submission_id = "other"


def test_forward_transitions_and_repeats():
    prediction = _prediction()
    assert prediction.advance(PredictionStatus.PROCESSING)
    assert prediction.advance(PredictionStatus.PROCESSING)
    assert prediction.advance(PredictionStatus.SUCCEEDED, output=["https://x/1.png"])
    assert prediction.output == ["https://x/1.png"]
    assert prediction.is_terminal


def test_skip_straight_to_terminal():
    prediction = _prediction()
    prediction.advance(PredictionStatus.SUCCEEDED, output=["u"])
    assert prediction.status == PredictionStatus.SUCCEEDED


def test_backwards_transition_raises():
    prediction = _prediction()
    prediction.advance(PredictionStatus.PROCESSING)
    with pytest.raises(ProtocolError):
        prediction.advance(PredictionStatus.STARTING)


def test_terminal_state_is_final():
    prediction = _prediction()
    prediction.advance(PredictionStatus.SUCCEEDED, output=["u"])

    assert prediction.advance(PredictionStatus.SUCCEEDED, output=["other"]) is False
    assert prediction.output == ["u"]
    with pytest.raises(ProtocolError):
        prediction.advance(PredictionStatus.FAILED, error="late")


def test_succeeded_without_output_raises():
    prediction = _prediction()
    with pytest.raises(ProtocolError):
        prediction.advance(PredictionStatus.SUCCEEDED, output=[])
    assert prediction.status == PredictionStatus.STARTING


def test_failed_clears_output_and_keeps_error():
    prediction = _prediction()
    prediction.advance(PredictionStatus.FAILED, output=["ignored"], error="NSFW content detected")
    assert prediction.output == []
    assert prediction.error == "NSFW content detected"


def test_failed_has_default_error():
    prediction = _prediction()
    prediction.advance(PredictionStatus.FAILED)
    assert prediction.error == "Prediction failed"


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("starting", PredictionStatus.STARTING),
        ("processing", PredictionStatus.PROCESSING),
        ("succeeded", PredictionStatus.SUCCEEDED),
        ("canceled", PredictionStatus.FAILED),
        ("cancelled", PredictionStatus.FAILED),
    ],
)
def test_status_from_provider(raw, expected):
    assert PredictionStatus.from_provider(raw) == expected


def test_unknown_provider_status_raises():
    with pytest.raises(ProtocolError):
        PredictionStatus.from_provider("queued")
    with pytest.raises(ProtocolError):
        PredictionStatus.from_provider(None)


def test_model_descriptor_ignores_unknown_catalog_keys():
    model = ModelDescriptor.model_validate(
        {"id": 7, "name": "Kandinsky", "source": "replicate", "thumbnail": "k.png"}
    )
    assert model.source == ProviderKind.REPLICATE
    assert not model.checked


def test_generation_request_ids_are_unique():
    model = ModelDescriptor(id=1, name="SDXL", source=ProviderKind.OPENAI)
    first = GenerationRequest(prompt="a", model=model, submission_id="s")
    second = GenerationRequest(prompt="a", model=model, submission_id="s")
    assert first.prediction_id != second.prediction_id
    assert first.source == ProviderKind.OPENAI
