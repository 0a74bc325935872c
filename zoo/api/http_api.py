"""
HTTP API adapter for the prediction orchestrator.

Architectural role:
- Expose the model catalog, submission fan-out, submission views and the
  async-provider webhook over HTTP.
- Enforce adapter-level input validation (prompt, model selection, counts).
- Delegate generation to `zoo.core.orchestrator.SubmissionOrchestrator`.

Endpoint responsibilities:
- `GET /api/models`: list catalog descriptors.
- `POST /api/submissions`: validate input, dispatch one submission, return its id.
- `GET /api/submissions/{id}`: live collection, or the stored view.
- `DELETE /api/submissions/{id}`: stop observing a live submission.
- `GET /api/predictions/{id}`: one stored prediction.
- `POST /api/replicate-webhook`: fold a provider callback into the store.

Request lifecycle (`POST /api/submissions`):
1. Validate the JSON body against `SubmissionRequest`.
2. Resolve requested model ids/names (or the catalog's checked models).
3. Dispatch through the orchestrator; tasks keep running after the response.
4. Return `201 {"submission_id": ...}`.

Error handling strategy:
- Validation failures return HTTP 400/422 JSON responses.
- `ProviderError` maps to 502 with the provider `detail` verbatim.
- `ConfigurationError` is raised by `create_app` before serving; at request
  time it maps to 500.
- Webhook deliveries that would move a prediction backwards are acknowledged
  and ignored, so the provider does not redeliver them.

Side effects:
- Loads environment variables at import time via `load_dotenv()`.
- Writes predictions through the configured store.
- Emits request debug logs only when `DEBUG == "true"`.
"""

from dotenv import load_dotenv

load_dotenv()

import logging
import os
from contextlib import asynccontextmanager

import httpx
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from zoo.core.catalog import find_models, load_models, required_sources, selected_models
from zoo.core.errors import ConfigurationError, ProtocolError, ProviderError
from zoo.core.models import ModelDescriptor, ProviderKind
from zoo.core.orchestrator import SubmissionOrchestrator
from zoo.core.submission_view import serialize_collection
from zoo.providers.provider_config import ZooConfig
from zoo.providers.registry import build_registry
from zoo.store.prediction_store import JsonPredictionStore


logger = logging.getLogger(__name__)

# Request/response debug logging is opt-in.
DEBUG = os.getenv("DEBUG") == "true"

MAX_OUTPUTS_PER_MODEL = 10


# ============================================================
# Request Schema
# ============================================================

class SubmissionRequest(BaseModel):
    """Payload for `POST /api/submissions`.

    `models` holds catalog ids or names; omitted means the catalog's checked
    models.
    """

    prompt: str = Field(min_length=1)
    models: list[int | str] | None = None
    num_outputs: int = Field(default=3, ge=0, le=MAX_OUTPUTS_PER_MODEL)
    anon_id: str | None = None


# ============================================================
# Application Factory
# ============================================================

def create_app(
    config: ZooConfig | None = None,
    models: list[ModelDescriptor] | None = None,
    store=None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> FastAPI:
    """Build the FastAPI app with its orchestrator and adapters.

    Args:
        config: Runtime config; read from the environment when omitted.
        models: Model catalog; loaded from `config.models_path` when omitted.
        store: Prediction store; a `JsonPredictionStore` at `config.store_path`
            when omitted.
        transport: Optional httpx transport for the shared provider client.

    Raises:
        ConfigurationError: Missing token, webhook host, provider key needed by
            the catalog, or an invalid catalog.
    """
    config = config or ZooConfig.from_env()
    models = models if models is not None else load_models(config.models_path)
    config.validate(required_sources(models))
    store = store if store is not None else JsonPredictionStore(config.store_path)

    client = httpx.AsyncClient(timeout=config.http_timeout, transport=transport)
    registry = build_registry(config, client)
    orchestrator = SubmissionOrchestrator(
        registry,
        store,
        poll_interval=config.poll_interval,
        settled_retention=config.settled_retention,
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        await orchestrator.aclose()
        await client.aclose()

    app = FastAPI(lifespan=lifespan)
    app.state.config = config
    app.state.models = models
    app.state.store = store
    app.state.registry = registry
    app.state.orchestrator = orchestrator

    @app.exception_handler(ProviderError)
    async def provider_error_handler(request: Request, exc: ProviderError):
        return JSONResponse(status_code=502, content={"detail": exc.detail})

    @app.exception_handler(ConfigurationError)
    async def configuration_error_handler(request: Request, exc: ConfigurationError):
        logger.error("Configuration error while serving %s: %s", request.url.path, exc)
        return JSONResponse(status_code=500, content={"detail": str(exc)})

    # ============================================================
    # Catalog
    # ============================================================

    @app.get("/api/models")
    def list_models():
        return [model.model_dump(mode="json") for model in models]

    # ============================================================
    # Submissions
    # ============================================================

    @app.post("/api/submissions", status_code=201)
    async def create_submission(body: SubmissionRequest):
        """Dispatch one submission; generation continues after the response."""
        if body.models is None:
            chosen = selected_models(models)
        else:
            try:
                chosen = find_models(models, body.models)
            except KeyError as exc:
                return JSONResponse(status_code=400, content={"detail": exc.args[0]})

        if not chosen:
            return JSONResponse(status_code=400, content={"detail": "No model selected"})

        if DEBUG:
            logger.debug(
                "Submission request: prompt=%r models=%s num_outputs=%d",
                body.prompt,
                [model.name for model in chosen],
                body.num_outputs,
            )

        submission_id = await orchestrator.submit(
            body.prompt,
            chosen,
            body.num_outputs,
            anon_id=body.anon_id,
        )
        return {"submission_id": submission_id}

    @app.get("/api/submissions/{submission_id}")
    async def get_submission(submission_id: str):
        collection = orchestrator.view(submission_id)
        if orchestrator.collection(submission_id) is None and not len(collection):
            return JSONResponse(status_code=404, content={"detail": "Submission not found"})
        return serialize_collection(collection)

    @app.delete("/api/submissions/{submission_id}")
    async def cancel_submission(submission_id: str):
        if orchestrator.collection(submission_id) is None:
            return JSONResponse(status_code=404, content={"detail": "Submission not running"})
        return {"cancelled": orchestrator.cancel(submission_id)}

    # ============================================================
    # Predictions
    # ============================================================

    @app.get("/api/predictions/{prediction_id}")
    def get_prediction(prediction_id: str):
        prediction = store.get(prediction_id)
        if prediction is None:
            return JSONResponse(status_code=404, content={"detail": "Prediction not found"})
        return prediction.model_dump(mode="json")

    @app.post("/api/replicate-webhook")
    async def replicate_webhook(request: Request):
        """Record an async-provider status delivery.

        Query params carry the submission context written at submission time.
        Known predictions are advanced in place; unknown ones are created from
        the delivery.
        """
        raw = await request.json()
        if not isinstance(raw, dict) or not raw.get("id"):
            return JSONResponse(status_code=400, content={"detail": "Webhook body missing prediction id"})

        params = dict(request.query_params)
        adapter = registry.get(ProviderKind.REPLICATE)

        if DEBUG:
            logger.debug("Webhook delivery for %s: status=%s", raw.get("id"), raw.get("status"))

        existing = store.get(raw["id"])
        try:
            if existing is not None:
                adapter.apply_update(existing, raw)
                prediction = existing
            else:
                prediction = adapter.normalize_callback(raw, params)
        except ProtocolError as exc:
            logger.warning("Ignoring webhook delivery for %s: %s", raw.get("id"), exc.detail)
            return {"ignored": True, "detail": exc.detail}

        store.upsert(prediction)
        return {"id": prediction.id, "status": prediction.status.value}

    return app
