"""OpenAI-images-style sync-call adapter.

Processing flow:
    1. Render the prompt through the model's template.
    2. POST one image request (`n=1`, `size=WxH`) with a bearer key.
    3. Read the artifact from `data[0].url`, or `data[0].b64_json` as a data URI.
    4. Return a Prediction already in `succeeded`.

Error handling strategy:
    - Non-200 response -> `ProviderError` with the provider's error message.
    - Missing `data[0]` artifact -> `ProtocolError`.
"""

from typing import Any

import httpx

from zoo.core.errors import ProtocolError
from zoo.core.models import GenerationRequest, Prediction, ProviderKind
from zoo.prompting.prompt_builder import format_dimensions, render_prompt, resolve_dimensions
from zoo.providers.base import as_data_uri, completed_prediction, parse_response
from zoo.providers.provider_config import PROVIDERS


DEFAULT_VERSION = "dall-e"

# Catalog params forwarded unchanged; anything else is dropped.
FORWARDED_PARAMS = ("model", "quality", "style")


class OpenAIImagesAdapter:
    """Sync-call provider adapter (`ProviderKind.OPENAI`)."""

    kind = ProviderKind.OPENAI

    def __init__(
        self,
        client: httpx.AsyncClient,
        api_key: str,
        base_url: str = PROVIDERS[ProviderKind.OPENAI]["url"],
        image_width: int = 512,
        image_height: int = 512,
    ) -> None:
        self.client = client
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.image_width = image_width
        self.image_height = image_height

    def build_body(self, request: GenerationRequest) -> dict[str, Any]:
        params = request.model.default_params
        width, height = resolve_dimensions(params, self.image_width, self.image_height)
        body: dict[str, Any] = {
            "prompt": render_prompt(request.prompt, request.model.prompt_template),
            "n": 1,
            "size": format_dimensions(width, height),
        }
        for key in FORWARDED_PARAMS:
            if key in params:
                body[key] = params[key]
        return body

    async def submit(self, request: GenerationRequest) -> dict[str, Any]:
        response = await self.client.post(
            f"{self.base_url}/v1/images/generations",
            json=self.build_body(request),
            headers={
                "Authorization": f"Bearer {self.api_key}",
                "Content-Type": "application/json",
            },
        )
        return parse_response(response, 200, self.kind)

    def normalize(self, raw: dict[str, Any], request: GenerationRequest) -> Prediction:
        data = raw.get("data")
        first = data[0] if isinstance(data, list) and data else None
        if not isinstance(first, dict):
            raise ProtocolError("OpenAI response missing data[0]", provider=self.kind.value)

        artifact = first.get("url")
        if not artifact and first.get("b64_json"):
            artifact = as_data_uri(first["b64_json"])
        if not artifact:
            raise ProtocolError("OpenAI response missing image url", provider=self.kind.value)

        return completed_prediction(request, request.model.version or DEFAULT_VERSION, artifact)

    async def generate(self, request: GenerationRequest) -> Prediction:
        raw = await self.submit(request)
        return self.normalize(raw, request)
