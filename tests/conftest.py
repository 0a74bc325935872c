import json

import httpx
import pytest

from zoo.core.models import ModelDescriptor, ProviderKind
from zoo.core.orchestrator import SubmissionOrchestrator
from zoo.providers.provider_config import ZooConfig
from zoo.providers.registry import build_registry
from zoo.store.prediction_store import InMemoryPredictionStore


class ProviderStub:
    """In-process stand-in for the three provider APIs, served via MockTransport.

    Replicate jobs walk through `replicate_statuses`, one entry per status
    query; the last entry repeats forever.
    """

    def __init__(self):
        self.requests: list[httpx.Request] = []
        self.replicate_statuses = ["processing", "processing", "succeeded"]
        self.replicate_submit_status = 201
        self.replicate_detail = "Invalid version or not permitted"
        self.replicate_poll_status = 200
        self.openai_status = 200
        self.openai_body = None
        self.stability_status = 200
        self.stability_body = None
        self._jobs: dict[str, list[str]] = {}
        self._counter = 0

    def requests_to(self, host: str, method: str | None = None) -> list[httpx.Request]:
        return [
            r for r in self.requests
            if r.url.host == host and (method is None or r.method == method)
        ]

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        host = request.url.host
        if host == "api.replicate.com":
            return self._replicate(request)
        if host == "api.openai.com":
            return self._openai(request)
        if host == "api.stability.ai":
            return self._stability(request)
        return httpx.Response(404, json={"detail": f"unexpected host {host}"})

    def _replicate(self, request: httpx.Request) -> httpx.Response:
        if request.method == "POST":
            if self.replicate_submit_status != 201:
                return httpx.Response(self.replicate_submit_status, json={"detail": self.replicate_detail})
            self._counter += 1
            job_id = f"job-{self._counter}"
            self._jobs[job_id] = list(self.replicate_statuses)
            body = json.loads(request.content)
            return httpx.Response(
                201,
                json={
                    "id": job_id,
                    "status": "starting",
                    "version": body.get("version", "deployment-version"),
                    "input": body["input"],
                    "output": None,
                    "created_at": "2024-01-01T00:00:00Z",
                },
            )

        job_id = request.url.path.rsplit("/", 1)[-1]
        if self.replicate_poll_status != 200:
            return httpx.Response(self.replicate_poll_status, json={"detail": "status lookup failed"})
        remaining = self._jobs[job_id]
        status = remaining.pop(0) if len(remaining) > 1 else remaining[0]
        return httpx.Response(
            200,
            json={
                "id": job_id,
                "status": status,
                "output": [f"https://replicate.delivery/{job_id}.png"] if status == "succeeded" else None,
                "error": "CUDA out of memory" if status == "failed" else None,
            },
        )

    def _openai(self, request: httpx.Request) -> httpx.Response:
        if self.openai_status != 200:
            return httpx.Response(self.openai_status, json={"error": {"message": "Your request was rejected"}})
        body = self.openai_body or {"created": 1, "data": [{"url": "https://openai.example/img-1.png"}]}
        return httpx.Response(200, json=body)

    def _stability(self, request: httpx.Request) -> httpx.Response:
        if self.stability_status != 200:
            return httpx.Response(self.stability_status, json={"name": "bad_request", "message": "invalid prompts"})
        body = self.stability_body or {"artifacts": [{"base64": "aGVsbG8=", "finishReason": "SUCCESS", "seed": 1}]}
        return httpx.Response(200, json=body)


@pytest.fixture
def stub():
    return ProviderStub()


@pytest.fixture
def config():
    return ZooConfig(
        replicate_api_token="r8_test",
        openai_api_key="sk-test",
        stability_api_key="sk-stability",
        webhook_host="https://zoo.example.com",
        poll_interval=0.01,
    )


@pytest.fixture
def replicate_model():
    return ModelDescriptor(
        id=1,
        name="SDXL",
        owner="stability-ai",
        source=ProviderKind.REPLICATE,
        version="sdxl-version",
        prompt_template="a photo of TOK, {prompt}",
        default_params={"width": 1024, "height": 1024, "num_outputs": 1},
        checked=True,
    )


@pytest.fixture
def openai_model():
    return ModelDescriptor(id=2, name="DALL-E", owner="openai", source=ProviderKind.OPENAI, version="dall-e", checked=True)


@pytest.fixture
def stability_model():
    return ModelDescriptor(id=3, name="Stable Diffusion XL", owner="stability", source=ProviderKind.STABILITY)


@pytest.fixture
def models(replicate_model, openai_model, stability_model):
    return [replicate_model, openai_model, stability_model]


@pytest.fixture
def http_client(stub):
    # MockTransport holds no sockets, so the client needs no explicit close.
    return httpx.AsyncClient(transport=httpx.MockTransport(stub.handler))


@pytest.fixture
def store():
    return InMemoryPredictionStore()


@pytest.fixture
def registry(config, http_client):
    return build_registry(config, http_client)


@pytest.fixture
def orchestrator(registry, store, config):
    return SubmissionOrchestrator(registry, store, poll_interval=config.poll_interval)
