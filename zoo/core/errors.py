"""Error taxonomy shared by providers, poller, orchestrator and API adapters.

Hierarchy:
    ZooError
     ├── ConfigurationError   missing credential/webhook host (startup only)
     ├── PollCancelled        a poller observed its cancellation token
     └── ProviderError        non-success provider response (submit or poll)
          └── ProtocolError   provider response missing an expected field, or
                              an illegal status transition

Propagation:
    Adapter and poller errors reject the owning generation task. The
    orchestrator converts a rejection into a failed slot; nothing is retried.
"""


class ZooError(Exception):
    """Base class for every error raised by this package."""


class ConfigurationError(ZooError):
    """Required configuration is missing. Fatal at startup, never per request."""


class PollCancelled(ZooError):
    """Raised by the poller when its cancellation token has been set."""


class ProviderError(ZooError):
    """Non-success response from a provider call.

    Attributes:
        detail: Provider-supplied error text, preserved verbatim.
        status_code: HTTP status of the failing response, when known.
        provider: Provider kind value (`replicate`, `openai`, `stability`).
    """

    def __init__(self, detail: str, status_code: int | None = None, provider: str | None = None):
        super().__init__(detail)
        self.detail = detail
        self.status_code = status_code
        self.provider = provider


class ProtocolError(ProviderError):
    """Provider response violated the expected contract."""
