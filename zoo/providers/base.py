"""Capability interface shared by every provider adapter.

Contract:
    `submit(request) -> raw` performs the provider call and returns the parsed
    JSON body; `normalize(raw, request) -> Prediction` turns that body into the
    provider-agnostic record. `generate` chains both.

Error handling strategy:
    - Non-success HTTP status -> `ProviderError` with the provider's `detail`
      text preserved verbatim.
    - Non-JSON or structurally unexpected bodies -> `ProtocolError`.
    - Transport failures (`httpx.RequestError`) propagate unchanged.
"""

import json
import logging
from typing import Any, Protocol

import httpx

from zoo.core.errors import ProtocolError, ProviderError
from zoo.core.models import GenerationRequest, Prediction, PredictionStatus, ProviderKind


logger = logging.getLogger(__name__)


class ProviderAdapter(Protocol):
    """Minimal async interface the orchestrator dispatches to."""

    kind: ProviderKind

    async def submit(self, request: GenerationRequest) -> dict[str, Any]:
        ...

    def normalize(self, raw: dict[str, Any], request: GenerationRequest) -> Prediction:
        ...

    async def generate(self, request: GenerationRequest) -> Prediction:
        ...


class AsyncJobProvider(ProviderAdapter, Protocol):
    """Adapter whose result arrives later and must be polled."""

    async def fetch(self, prediction_id: str) -> dict[str, Any]:
        ...

    def apply_update(self, prediction: Prediction, raw: dict[str, Any]) -> bool:
        ...


def extract_error_detail(response: httpx.Response) -> str:
    """Return the provider-supplied error text for a failed response.

    Looks for the common envelope shapes (`detail`, `message`, `error`,
    `error.message`, `name`) and falls back to the raw body.
    """
    try:
        body = response.json()
    except (json.JSONDecodeError, ValueError):
        body = None

    if isinstance(body, dict):
        for key in ("detail", "message"):
            value = body.get(key)
            if isinstance(value, str) and value:
                return value
        error = body.get("error")
        if isinstance(error, dict):
            message = error.get("message")
            if isinstance(message, str) and message:
                return message
        elif isinstance(error, str) and error:
            return error
        name = body.get("name")
        if isinstance(name, str) and name:
            return name

    text = response.text.strip()
    return text or f"HTTP {response.status_code}"


def parse_response(response: httpx.Response, expected_status: int | tuple[int, ...], kind: ProviderKind) -> dict[str, Any]:
    """Validate status code and decode a JSON object body.

    Raises:
        ProviderError: Status not in `expected_status`.
        ProtocolError: Body is not a JSON object.
    """
    expected = (expected_status,) if isinstance(expected_status, int) else expected_status
    if response.status_code not in expected:
        detail = extract_error_detail(response)
        logger.warning(
            "%s request %s %s failed with status %s: %s",
            kind.value,
            response.request.method,
            response.request.url,
            response.status_code,
            detail,
        )
        raise ProviderError(detail, status_code=response.status_code, provider=kind.value)

    try:
        body = response.json()
    except (json.JSONDecodeError, ValueError):
        raise ProtocolError(
            f"{kind.value} returned a non-JSON body", status_code=response.status_code, provider=kind.value
        ) from None
    if not isinstance(body, dict):
        raise ProtocolError(
            f"{kind.value} returned non-object JSON", status_code=response.status_code, provider=kind.value
        )
    return body


def completed_prediction(request: GenerationRequest, version: str, artifact: str) -> Prediction:
    """Build the terminal record for a sync-call provider.

    The HTTP round trip is the whole lifecycle, so the record is created
    directly in `succeeded` with the request's local id and timestamp.
    """
    prediction = Prediction(
        id=request.prediction_id,
        submission_id=request.submission_id,
        model=request.model.name,
        source=request.model.source,
        version=version,
        input={"prompt": request.prompt},
        created_at=request.created_at,
        anon_id=request.anon_id,
    )
    prediction.advance(PredictionStatus.SUCCEEDED, output=[artifact])
    return prediction


def as_data_uri(encoded: str, media_type: str = "image/png") -> str:
    if encoded.startswith("data:"):
        return encoded
    return f"data:{media_type};base64,{encoded}"
