"""Provider/runtime configuration for the prediction orchestrator.

Architectural role:
    Centralizes provider endpoints, credential lookup and runtime knobs consumed
    by `zoo.providers.registry` (adapter construction), `zoo.core.poller`
    (poll interval) and the API entrypoints (store/catalog paths).

Resolution:
    Values are read from the process environment (after `load_dotenv()` in the
    entrypoints) when `ZooConfig.from_env()` is called. Credentials may also be
    supplied through key files, see `load_key`.

Failure behavior:
    `ZooConfig.validate` raises `ConfigurationError` at startup when the
    async-job token or the webhook host is missing, and when a catalog requires
    a sync provider whose key is absent. Nothing degrades silently.
"""

import os
from dataclasses import dataclass

from zoo.core.errors import ConfigurationError
from zoo.core.models import ProviderKind


# Endpoint map per provider family.
PROVIDERS = {

    ProviderKind.REPLICATE: {
        "url": "https://api.replicate.com",
        "key_file": "config/replicate.key",
        "env": "REPLICATE_API_TOKEN",
    },

    ProviderKind.OPENAI: {
        "url": "https://api.openai.com",
        "key_file": "config/openai.key",
        "env": "OPENAI_API_KEY",
    },

    ProviderKind.STABILITY: {
        "url": "https://api.stability.ai",
        "key_file": "config/stability.key",
        "env": "STABILITY_API_KEY",
    },

}

STABILITY_ENGINE_ID = "stable-diffusion-xl-beta-v2-2-2"
WEBHOOK_PATH = "/api/replicate-webhook"
USER_AGENT = "zoo/0.1.0"


def load_key(path, env_name=None):
    """Load an API key from an environment variable or a key file.

    Resolution order:
        1. `env_name` when given, otherwise a name inferred from the file stem
           (for example `config/openai.key` -> `OPENAI_API_KEY`).
        2. Raw file contents at `path`.

    Edge cases:
        - `None` path and unset variable return `None`.
        - Missing file returns `None`.
    """
    key_name = env_name
    if not key_name and path:
        key_name = os.path.splitext(os.path.basename(path))[0].upper() + "_API_KEY"
    if key_name:
        env_value = os.getenv(key_name, "").strip()
        if env_value:
            return env_value
    if not path or not os.path.exists(path):
        return None
    with open(path, "r") as f:
        return f.read().strip() or None


def resolve_webhook_host():
    """Return the public base address provider callbacks are delivered to.

    `ZOO_WEBHOOK_HOST` wins, then a hosted deployment URL (`VERCEL_URL`, served
    over https), then a local tunnel (`NGROK_HOST`).
    """
    explicit = os.getenv("ZOO_WEBHOOK_HOST", "").strip()
    if explicit:
        return explicit.rstrip("/")
    vercel_url = os.getenv("VERCEL_URL", "").strip()
    if vercel_url:
        return f"https://{vercel_url}".rstrip("/")
    ngrok_host = os.getenv("NGROK_HOST", "").strip()
    return ngrok_host.rstrip("/") or None


def _provider_key(kind):
    provider = PROVIDERS[kind]
    return load_key(provider["key_file"], provider["env"])


@dataclass(frozen=True)
class ZooConfig:
    """Runtime configuration for adapters, poller, store and catalog.

    Relevant environment variables:
        - `REPLICATE_API_TOKEN`, `OPENAI_API_KEY`, `STABILITY_API_KEY`
        - `ZOO_WEBHOOK_HOST` / `VERCEL_URL` / `NGROK_HOST`
        - `ZOO_POLL_INTERVAL` (seconds, default 0.5)
        - `ZOO_HTTP_TIMEOUT` (seconds, default 120)
        - `ZOO_IMAGE_WIDTH`, `ZOO_IMAGE_HEIGHT` (default 512)
        - `ZOO_STORE_PATH` (directory, one JSON file per submission), `ZOO_MODELS_PATH`
        - `ZOO_SETTLED_RETENTION` (settled submissions kept in memory, default 32)
    """

    replicate_api_token: str | None = None
    openai_api_key: str | None = None
    stability_api_key: str | None = None
    webhook_host: str | None = None
    replicate_url: str = PROVIDERS[ProviderKind.REPLICATE]["url"]
    openai_url: str = PROVIDERS[ProviderKind.OPENAI]["url"]
    stability_url: str = PROVIDERS[ProviderKind.STABILITY]["url"]
    stability_engine_id: str = STABILITY_ENGINE_ID
    poll_interval: float = 0.5
    http_timeout: float = 120.0
    image_width: int = 512
    image_height: int = 512
    store_path: str = "data/predictions"
    settled_retention: int = 32
    models_path: str = "config/models.json"

    @classmethod
    def from_env(cls) -> "ZooConfig":
        """Build configuration from the current process environment."""
        return cls(
            replicate_api_token=_provider_key(ProviderKind.REPLICATE),
            openai_api_key=_provider_key(ProviderKind.OPENAI),
            stability_api_key=_provider_key(ProviderKind.STABILITY),
            webhook_host=resolve_webhook_host(),
            replicate_url=os.getenv("REPLICATE_API_HOST", cls.replicate_url).rstrip("/"),
            openai_url=os.getenv("OPENAI_API_HOST", cls.openai_url).rstrip("/"),
            stability_url=os.getenv("STABILITY_API_HOST", cls.stability_url).rstrip("/"),
            stability_engine_id=os.getenv("STABILITY_ENGINE_ID", cls.stability_engine_id),
            poll_interval=float(os.getenv("ZOO_POLL_INTERVAL", "0.5")),
            http_timeout=float(os.getenv("ZOO_HTTP_TIMEOUT", "120")),
            image_width=int(os.getenv("ZOO_IMAGE_WIDTH", "512")),
            image_height=int(os.getenv("ZOO_IMAGE_HEIGHT", "512")),
            store_path=os.getenv("ZOO_STORE_PATH", cls.store_path),
            settled_retention=int(os.getenv("ZOO_SETTLED_RETENTION", "32")),
            models_path=os.getenv("ZOO_MODELS_PATH", cls.models_path),
        )

    def credential_for(self, kind: ProviderKind) -> str | None:
        return {
            ProviderKind.REPLICATE: self.replicate_api_token,
            ProviderKind.OPENAI: self.openai_api_key,
            ProviderKind.STABILITY: self.stability_api_key,
        }[kind]

    def validate(self, required_sources=()) -> "ZooConfig":
        """Fail fast on missing configuration.

        Args:
            required_sources: Provider kinds used by the loaded model catalog.

        Returns:
            `self`, so calls can be chained after `from_env()`.

        Raises:
            ConfigurationError: Missing async-job token, missing webhook host,
                or missing key for a sync provider the catalog needs.
        """
        if not self.replicate_api_token:
            raise ConfigurationError(
                "The REPLICATE_API_TOKEN environment variable is not set."
            )
        if not self.webhook_host:
            raise ConfigurationError(
                "No webhook host configured (ZOO_WEBHOOK_HOST, VERCEL_URL or NGROK_HOST); "
                "async predictions would never be recorded."
            )
        for kind in required_sources:
            kind = ProviderKind(kind)
            if not self.credential_for(kind):
                raise ConfigurationError(
                    f"Missing {PROVIDERS[kind]['env']} for {kind.value} models in the catalog."
                )
        if self.poll_interval <= 0:
            raise ConfigurationError("ZOO_POLL_INTERVAL must be positive.")
        if self.settled_retention < 0:
            raise ConfigurationError("ZOO_SETTLED_RETENTION must not be negative.")
        return self
