"""Stability-style sync-call adapter.

Processing flow:
    1. POST a text-to-image request for the configured engine with the rendered
       prompt, dimensions and sampling params (`cfg_scale`, `steps`,
       `clip_guidance_preset`, one sample).
    2. Read `artifacts[0].base64` and wrap it as an inline `data:` URI.
    3. Return a Prediction already in `succeeded`.

Error handling strategy:
    - Non-200 response -> `ProviderError` with the provider's `message`.
    - Missing artifact, or an artifact with `finishReason == "ERROR"` ->
      `ProtocolError`.
"""

import logging
from typing import Any

import httpx

from zoo.core.errors import ProtocolError
from zoo.core.models import GenerationRequest, Prediction, ProviderKind
from zoo.prompting.prompt_builder import render_prompt, resolve_dimensions
from zoo.providers.base import as_data_uri, completed_prediction, parse_response
from zoo.providers.provider_config import PROVIDERS, STABILITY_ENGINE_ID


logger = logging.getLogger(__name__)

DEFAULT_VERSION = "stability"

SAMPLING_DEFAULTS = {
    "cfg_scale": 7,
    "clip_guidance_preset": "FAST_BLUE",
    "steps": 30,
}


class StabilityAdapter:
    """Sync-call provider adapter (`ProviderKind.STABILITY`)."""

    kind = ProviderKind.STABILITY

    def __init__(
        self,
        client: httpx.AsyncClient,
        api_key: str,
        base_url: str = PROVIDERS[ProviderKind.STABILITY]["url"],
        engine_id: str = STABILITY_ENGINE_ID,
        image_width: int = 512,
        image_height: int = 512,
    ) -> None:
        self.client = client
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.engine_id = engine_id
        self.image_width = image_width
        self.image_height = image_height

    def build_body(self, request: GenerationRequest) -> dict[str, Any]:
        params = request.model.default_params
        width, height = resolve_dimensions(params, self.image_width, self.image_height)
        body: dict[str, Any] = {
            "text_prompts": [{"text": render_prompt(request.prompt, request.model.prompt_template)}],
            "height": height,
            "width": width,
            "samples": 1,
        }
        for key, default in SAMPLING_DEFAULTS.items():
            body[key] = params.get(key, default)
        return body

    def endpoint(self, request: GenerationRequest) -> str:
        engine_id = request.model.default_params.get("engine_id") or self.engine_id
        return f"{self.base_url}/v1/generation/{engine_id}/text-to-image"

    async def submit(self, request: GenerationRequest) -> dict[str, Any]:
        response = await self.client.post(
            self.endpoint(request),
            json=self.build_body(request),
            headers={
                "Authorization": f"Bearer {self.api_key}",
                "Content-Type": "application/json",
                "Accept": "application/json",
            },
        )
        return parse_response(response, 200, self.kind)

    def normalize(self, raw: dict[str, Any], request: GenerationRequest) -> Prediction:
        artifacts = raw.get("artifacts")
        first = artifacts[0] if isinstance(artifacts, list) and artifacts else None
        if not isinstance(first, dict):
            raise ProtocolError("Stability response missing artifacts[0]", provider=self.kind.value)
        if first.get("finishReason") == "ERROR":
            raise ProtocolError("Stability reported a generation error", provider=self.kind.value)

        encoded = first.get("base64")
        if not encoded:
            raise ProtocolError("Stability response missing base64 artifact", provider=self.kind.value)

        logger.debug("Stability artifact keys: %s", sorted(first))
        return completed_prediction(request, request.model.version or DEFAULT_VERSION, as_data_uri(encoded))

    async def generate(self, request: GenerationRequest) -> Prediction:
        raw = await self.submit(request)
        return self.normalize(raw, request)
