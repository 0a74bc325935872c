"""Provider dispatch map used by the submission orchestrator.

Role in pipeline:
    - Builds one adapter instance per provider kind, once, at startup.
    - Resolves `ModelDescriptor.source` to its adapter for every request.

Construction:
    Adapters share one injected `httpx.AsyncClient` and read their credentials
    and endpoints from `ZooConfig`. Sync-call adapters are only built when their
    key is configured; `ZooConfig.validate` has already rejected catalogs that
    need a missing key.

Error handling strategy:
    Dispatching to a kind with no adapter raises `ConfigurationError`.
"""

import httpx

from zoo.core.errors import ConfigurationError
from zoo.core.models import ProviderKind
from zoo.providers.base import ProviderAdapter
from zoo.providers.openai_client import OpenAIImagesAdapter
from zoo.providers.provider_config import ZooConfig
from zoo.providers.replicate_client import ReplicateAdapter
from zoo.providers.stability_client import StabilityAdapter


class AdapterRegistry:
    """Immutable map from `ProviderKind` to adapter instance."""

    def __init__(self, adapters: dict[ProviderKind, ProviderAdapter]) -> None:
        self._adapters = dict(adapters)

    def __contains__(self, kind) -> bool:
        return ProviderKind(kind) in self._adapters

    def kinds(self) -> list[ProviderKind]:
        return list(self._adapters)

    def get(self, kind) -> ProviderAdapter:
        kind = ProviderKind(kind)
        adapter = self._adapters.get(kind)
        if adapter is None:
            raise ConfigurationError(f"No adapter configured for provider {kind.value}")
        return adapter


def build_registry(config: ZooConfig, client: httpx.AsyncClient) -> AdapterRegistry:
    """Construct every adapter the configuration has credentials for."""
    adapters: dict[ProviderKind, ProviderAdapter] = {
        ProviderKind.REPLICATE: ReplicateAdapter(
            client,
            api_token=config.replicate_api_token or "",
            webhook_host=config.webhook_host or "",
            base_url=config.replicate_url,
            image_width=config.image_width,
            image_height=config.image_height,
        ),
    }

    if config.openai_api_key:
        adapters[ProviderKind.OPENAI] = OpenAIImagesAdapter(
            client,
            api_key=config.openai_api_key,
            base_url=config.openai_url,
            image_width=config.image_width,
            image_height=config.image_height,
        )

    if config.stability_api_key:
        adapters[ProviderKind.STABILITY] = StabilityAdapter(
            client,
            api_key=config.stability_api_key,
            base_url=config.stability_url,
            engine_id=config.stability_engine_id,
            image_width=config.image_width,
            image_height=config.image_height,
        )

    return AdapterRegistry(adapters)
