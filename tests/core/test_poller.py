import asyncio

import pytest

from zoo.core.errors import PollCancelled, ProtocolError, ProviderError
from zoo.core.models import GenerationRequest, PredictionStatus
from zoo.core.poller import CancellationToken, PredictionPoller


@pytest.mark.asyncio
async def test_blue_cat_polls_until_succeeded(registry, replicate_model, stub):
    adapter = registry.get(replicate_model.source)
    request = GenerationRequest(prompt="a blue cat", model=replicate_model, submission_id="s1")
    prediction = await adapter.generate(request)

    observed = []
    result = await PredictionPoller(adapter, interval=0.01).poll(
        prediction, on_update=lambda snapshot: observed.append(snapshot.status)
    )

    assert result is prediction
    assert observed == [
        PredictionStatus.STARTING,
        PredictionStatus.PROCESSING,
        PredictionStatus.PROCESSING,
        PredictionStatus.SUCCEEDED,
    ]
    assert prediction.output == [f"https://replicate.delivery/{prediction.id}.png"]
    assert prediction.prompt == "a blue cat"
    assert len(stub.requests_to("api.replicate.com", "GET")) == 3


@pytest.mark.asyncio
async def test_provider_failure_is_terminal(registry, replicate_model, stub):
    stub.replicate_statuses = ["processing", "failed"]
    adapter = registry.get(replicate_model.source)
    prediction = await adapter.generate(GenerationRequest(prompt="x", model=replicate_model, submission_id="s1"))

    await PredictionPoller(adapter, interval=0.01).poll(prediction)

    assert prediction.status == PredictionStatus.FAILED
    assert prediction.error == "CUDA out of memory"
    assert prediction.output == []


@pytest.mark.asyncio
async def test_status_error_is_not_retried(registry, replicate_model, stub):
    adapter = registry.get(replicate_model.source)
    prediction = await adapter.generate(GenerationRequest(prompt="x", model=replicate_model, submission_id="s1"))
    stub.replicate_poll_status = 500

    with pytest.raises(ProviderError) as excinfo:
        await PredictionPoller(adapter, interval=0.01).poll(prediction)

    assert excinfo.value.detail == "status lookup failed"
    assert len(stub.requests_to("api.replicate.com", "GET")) == 1


@pytest.mark.asyncio
async def test_backwards_status_raises_protocol_error(registry, replicate_model, stub):
    stub.replicate_statuses = ["processing", "starting"]
    adapter = registry.get(replicate_model.source)
    prediction = await adapter.generate(GenerationRequest(prompt="x", model=replicate_model, submission_id="s1"))

    with pytest.raises(ProtocolError):
        await PredictionPoller(adapter, interval=0.01).poll(prediction)


@pytest.mark.asyncio
async def test_cancellation_stops_observation(registry, replicate_model, stub):
    stub.replicate_statuses = ["processing"]
    adapter = registry.get(replicate_model.source)
    prediction = await adapter.generate(GenerationRequest(prompt="x", model=replicate_model, submission_id="s1"))
    token = CancellationToken()

    task = asyncio.create_task(PredictionPoller(adapter, interval=0.01).poll(prediction, token=token))
    await asyncio.sleep(0.05)
    token.cancel()

    with pytest.raises(PollCancelled):
        await task
    assert prediction.status == PredictionStatus.PROCESSING
    polls = len(stub.requests_to("api.replicate.com", "GET"))
    await asyncio.sleep(0.03)
    assert len(stub.requests_to("api.replicate.com", "GET")) == polls


@pytest.mark.asyncio
async def test_token_set_before_poll_never_fetches(registry, replicate_model, stub):
    adapter = registry.get(replicate_model.source)
    prediction = await adapter.generate(GenerationRequest(prompt="x", model=replicate_model, submission_id="s1"))
    token = CancellationToken()
    token.cancel()

    with pytest.raises(PollCancelled):
        await PredictionPoller(adapter, interval=0.01).poll(prediction, token=token)
    assert stub.requests_to("api.replicate.com", "GET") == []
