"""Replicate-style async job adapter.

Processing flow:
    1. Build the job-creation body from the request (rendered prompt, image
       dimensions, model default params, version) plus a webhook address that
       carries the submission context as query params.
    2. Submit through the named-deployment path when the model descriptor names
       a deployment, otherwise through the generic model-version path.
    3. Normalize the 201 response into a `starting`/`processing` Prediction with
       the provider-assigned id.
    4. `fetch` exposes the job-status endpoint for `zoo.core.poller`; the
       webhook route uses `normalize_callback`/`apply_update` for deliveries.

Deployment failures:
    A rejected deployment submission is logged and raised. There is no fallback
    to the generic path, which would risk a double submission.

Error handling strategy:
    - Non-201 submit / non-200 status -> `ProviderError(detail)`.
    - Missing id or unknown status -> `ProtocolError`.
    - No retries; the poller treats the first error as terminal.
"""

import logging
from datetime import datetime
from typing import Any
from urllib.parse import urlencode

import httpx

from zoo.core.errors import ProtocolError, ProviderError
from zoo.core.models import (
    GenerationRequest,
    Prediction,
    PredictionStatus,
    ProviderKind,
    utcnow,
)
from zoo.prompting.prompt_builder import build_job_input
from zoo.providers.base import parse_response
from zoo.providers.provider_config import PROVIDERS, USER_AGENT, WEBHOOK_PATH


logger = logging.getLogger(__name__)

WEBHOOK_EVENTS = ["start", "completed"]


def coerce_output(value: Any) -> list[str]:
    """Normalize provider output (None, one URL, or a list) into a list of strings."""
    if value is None:
        return []
    if isinstance(value, str):
        return [value] if value else []
    if isinstance(value, (list, tuple)):
        return [str(item) for item in value if item]
    return [str(value)]


def _parse_timestamp(value: Any) -> datetime | None:
    if not isinstance(value, str) or not value:
        return None
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None


def _error_text(value: Any) -> str | None:
    if value is None or value == "":
        return None
    if isinstance(value, dict):
        return str(value.get("detail") or value.get("message") or value)
    return str(value)


class ReplicateAdapter:
    """Async-job provider adapter (`ProviderKind.REPLICATE`)."""

    kind = ProviderKind.REPLICATE

    def __init__(
        self,
        client: httpx.AsyncClient,
        api_token: str,
        webhook_host: str,
        base_url: str = PROVIDERS[ProviderKind.REPLICATE]["url"],
        image_width: int = 512,
        image_height: int = 512,
    ) -> None:
        self.client = client
        self.api_token = api_token
        self.webhook_host = webhook_host.rstrip("/")
        self.base_url = base_url.rstrip("/")
        self.image_width = image_width
        self.image_height = image_height

    def _headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Token {self.api_token}",
            "Content-Type": "application/json",
            "User-Agent": USER_AGENT,
        }

    # =========================================================
    # Submission
    # =========================================================

    def build_webhook(self, request: GenerationRequest) -> str:
        params = {
            "submission_id": request.submission_id,
            "model": request.model.name,
            "anon_id": request.anon_id or "",
            "source": self.kind.value,
        }
        return f"{self.webhook_host}{WEBHOOK_PATH}?{urlencode(params)}"

    def build_body(self, request: GenerationRequest) -> dict[str, Any]:
        model = request.model
        body: dict[str, Any] = {
            "input": build_job_input(
                request.prompt,
                model.prompt_template,
                model.default_params,
                self.image_width,
                self.image_height,
            ),
            "webhook": self.build_webhook(request),
            "webhook_events_filter": list(WEBHOOK_EVENTS),
        }
        if not model.deployment:
            body["version"] = model.version
        return body

    async def submit(self, request: GenerationRequest) -> dict[str, Any]:
        """Create one job and return the provider's job record.

        Raises:
            ProviderError: Non-201 response; `detail` is the provider text.
        """
        body = self.build_body(request)
        deployment = request.model.deployment

        if deployment:
            url = f"{self.base_url}/v1/deployments/{deployment.owner}/{deployment.name}/predictions"
            logger.info(
                "Running prediction using deployment %s/%s for submission %s",
                deployment.owner,
                deployment.name,
                request.submission_id,
            )
            try:
                response = await self.client.post(url, json=body, headers=self._headers())
                return parse_response(response, 201, self.kind)
            except ProviderError:
                logger.exception("Deployment-based prediction failed for %s/%s", deployment.owner, deployment.name)
                raise

        response = await self.client.post(
            f"{self.base_url}/v1/predictions",
            json=body,
            headers=self._headers(),
        )
        return parse_response(response, 201, self.kind)

    async def fetch(self, prediction_id: str) -> dict[str, Any]:
        """Query the job-status endpoint once. Non-200 raises `ProviderError`."""
        response = await self.client.get(
            f"{self.base_url}/v1/predictions/{prediction_id}",
            headers=self._headers(),
        )
        return parse_response(response, 200, self.kind)

    async def generate(self, request: GenerationRequest) -> Prediction:
        raw = await self.submit(request)
        return self.normalize(raw, request)

    # =========================================================
    # Normalization
    # =========================================================

    def normalize(self, raw: dict[str, Any], request: GenerationRequest) -> Prediction:
        return self._to_prediction(
            raw,
            submission_id=request.submission_id,
            model_name=request.model.name,
            version=request.model.version,
            anon_id=request.anon_id,
            prompt=request.prompt,
        )

    def normalize_callback(self, raw: dict[str, Any], params: dict[str, Any]) -> Prediction:
        """Build a Prediction from a webhook delivery for an unseen job.

        `params` are the query params written by `build_webhook`. The prompt
        falls back to the provider-side input, which is the rendered prompt.
        """
        submission_id = params.get("submission_id")
        if not submission_id:
            raise ProtocolError("Webhook delivery without submission_id", provider=self.kind.value)
        raw_input = raw.get("input") if isinstance(raw.get("input"), dict) else {}
        return self._to_prediction(
            raw,
            submission_id=submission_id,
            model_name=params.get("model") or "",
            version="",
            anon_id=params.get("anon_id") or None,
            prompt=str(raw_input.get("prompt", "")),
        )

    def apply_update(self, prediction: Prediction, raw: dict[str, Any]) -> bool:
        """Fold one status observation into an existing Prediction.

        Returns:
            Whether the record changed (see `Prediction.advance`).
        """
        status = PredictionStatus.from_provider(raw.get("status"))
        return prediction.advance(
            status,
            output=coerce_output(raw.get("output")),
            error=_error_text(raw.get("error")),
        )

    def _to_prediction(
        self,
        raw: dict[str, Any],
        submission_id: str,
        model_name: str,
        version: str,
        anon_id: str | None,
        prompt: str,
    ) -> Prediction:
        prediction_id = raw.get("id")
        if not isinstance(prediction_id, str) or not prediction_id:
            raise ProtocolError("Replicate did not return a prediction id.", provider=self.kind.value)

        prediction = Prediction(
            id=prediction_id,
            submission_id=submission_id,
            model=model_name,
            source=self.kind,
            version=str(raw.get("version") or version or ""),
            status=PredictionStatus.STARTING,
            input={"prompt": prompt},
            created_at=_parse_timestamp(raw.get("created_at")) or utcnow(),
            anon_id=anon_id,
        )
        self.apply_update(prediction, raw)
        return prediction
