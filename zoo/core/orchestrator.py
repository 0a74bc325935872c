"""Fan-out orchestration from one prompt to N models x M outputs.

Architectural role:
    Sits between the API/CLI entrypoints and the provider adapters. One user
    action becomes one submission id and one independent asyncio task per
    (model, output) pair.

Control-flow model:
    1. Resolve every selected model's adapter up front, so a misconfigured
       provider fails the whole call before anything is dispatched.
    2. Generate the submission id and an empty `ResultCollection`.
    3. For each model and each output index: append a `PendingSlot`, then start
       a task that submits, persists the initial record, polls async jobs to a
       terminal state, persists the terminal record and swaps the slot to
       `ResolvedPrediction`.
    4. Return the submission id without awaiting any task.

Concurrency:
    Tasks are neither ordered nor rate-limited; completion order is arbitrary
    and the collection reflects whatever has settled so far. Everything runs on
    one event loop, so collection mutations need no lock.

Error handling strategy:
    A task's exception is logged, the prediction (when one exists) is marked
    `failed` and persisted, and the slot becomes a `FailedSlot` carrying the
    message. Sibling tasks are unaffected. Nothing is retried.

Cancellation:
    `cancel` sets the submission's poll token and cancels its tasks. Remote jobs
    keep running; a later webhook delivery still reaches the store.

Retention:
    Once every task of a submission is done, its tasks and token are dropped and
    its collection moves to a bounded most-recently-settled map
    (`settled_retention` entries). Older submissions are served from the store.
"""

import asyncio
import logging
import uuid
from collections import OrderedDict
from functools import partial
from typing import Iterable

from zoo.core.errors import PollCancelled, ProviderError
from zoo.core.models import GenerationRequest, ModelDescriptor, Prediction, PredictionStatus
from zoo.core.poller import DEFAULT_POLL_INTERVAL, CancellationToken, PredictionPoller
from zoo.core.reconciler import PendingSlot, ResultCollection, SlotTag
from zoo.core.submission_view import prompt_from_predictions


logger = logging.getLogger(__name__)

CANCELLED_MESSAGE = "Prediction cancelled"
DEFAULT_SETTLED_RETENTION = 32


def _fail_if_cancelled(collection: ResultCollection, slot_id: int, task: asyncio.Task) -> None:
    # A task cancelled before its first step never runs its own handler.
    if task.cancelled() and isinstance(collection.entry(slot_id), PendingSlot):
        collection.fail(slot_id, CANCELLED_MESSAGE)


def _error_message(exc: BaseException) -> str:
    if isinstance(exc, ProviderError):
        return exc.detail
    return str(exc) or exc.__class__.__name__


class SubmissionOrchestrator:
    """Create submissions and track their predictions until settled.

    Args:
        registry: `AdapterRegistry` mapping provider kind to adapter.
        store: `PredictionStore` receiving initial and terminal records.
        poll_interval: Seconds between status queries for async jobs.
        settled_retention: How many settled collections stay in memory.
    """

    def __init__(
        self,
        registry,
        store,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        settled_retention: int = DEFAULT_SETTLED_RETENTION,
    ) -> None:
        self.registry = registry
        self.store = store
        self.poll_interval = poll_interval
        self.settled_retention = settled_retention
        self._collections: dict[str, ResultCollection] = {}
        self._settled: OrderedDict[str, ResultCollection] = OrderedDict()
        self._tasks: dict[str, list[asyncio.Task]] = {}
        self._tokens: dict[str, CancellationToken] = {}

    # =========================================================
    # Submission
    # =========================================================

    async def submit(
        self,
        prompt: str,
        selected_models: Iterable[ModelDescriptor],
        outputs_per_model: int,
        anon_id: str | None = None,
    ) -> str:
        """Dispatch one task per (model, output) pair and return the submission id.

        Raises:
            ValueError: Negative `outputs_per_model`.
            ConfigurationError: A selected model's provider has no adapter.
        """
        if outputs_per_model < 0:
            raise ValueError("outputs_per_model must be >= 0")

        models = list(selected_models)
        adapters = [self.registry.get(model.source) for model in models]

        submission_id = str(uuid.uuid4())
        collection = ResultCollection(submission_id, prompt=prompt)
        token = CancellationToken()
        tasks: list[asyncio.Task] = []
        self._collections[submission_id] = collection
        self._tokens[submission_id] = token
        self._tasks[submission_id] = tasks

        for model, adapter in zip(models, adapters):
            for output_index in range(outputs_per_model):
                request = GenerationRequest(
                    prompt=prompt,
                    model=model,
                    submission_id=submission_id,
                    output_index=output_index,
                    anon_id=anon_id,
                )
                slot_id = collection.add_pending(
                    SlotTag(
                        model=model.name,
                        source=model.source,
                        version=model.version,
                        output_index=output_index,
                    )
                )
                task = asyncio.create_task(
                    self._run(collection, slot_id, adapter, request, token),
                    name=f"prediction-{submission_id}-{slot_id}",
                )
                task.add_done_callback(partial(_fail_if_cancelled, collection, slot_id))
                task.add_done_callback(partial(self._release_if_settled, submission_id))
                tasks.append(task)

        logger.info(
            "Submission %s dispatched %d task(s) across %d model(s)",
            submission_id,
            len(tasks),
            len(models),
        )
        if not tasks:
            self._release(submission_id)
        return submission_id

    async def _run(
        self,
        collection: ResultCollection,
        slot_id: int,
        adapter,
        request: GenerationRequest,
        token: CancellationToken,
    ) -> Prediction | None:
        prediction: Prediction | None = None
        try:
            prediction = await adapter.generate(request)
            # A `start` webhook may already have stored this id; the store keeps
            # whichever record is further along.
            await self._persist(prediction)

            if not prediction.is_terminal:
                collection.observe(slot_id, prediction)
                poller = PredictionPoller(adapter, interval=self.poll_interval)
                await poller.poll(
                    prediction,
                    token=token,
                    on_update=lambda snapshot: collection.observe(slot_id, snapshot),
                )
                await self._persist(prediction)

        except asyncio.CancelledError:
            collection.fail(slot_id, CANCELLED_MESSAGE, prediction)
            raise

        except PollCancelled:
            collection.fail(slot_id, CANCELLED_MESSAGE, prediction)
            return None

        except Exception as exc:
            message = _error_message(exc)
            logger.exception(
                "Prediction task failed (submission=%s model=%s output=%d)",
                request.submission_id,
                request.model.name,
                request.output_index,
            )
            if prediction is not None and not prediction.is_terminal:
                prediction.advance(PredictionStatus.FAILED, error=message)
                await self._persist(prediction)
            collection.fail(slot_id, message, prediction)
            return None

        if prediction.status == PredictionStatus.FAILED:
            collection.fail(slot_id, prediction.error or "Prediction failed", prediction)
        else:
            collection.resolve(slot_id, prediction)
        return prediction

    async def _persist(self, prediction: Prediction) -> None:
        snapshot = prediction.model_copy(deep=True)
        try:
            await asyncio.to_thread(self.store.upsert, snapshot)
        except Exception:
            logger.exception("Failed to persist prediction %s", prediction.id)

    # =========================================================
    # Observation
    # =========================================================

    def collection(self, submission_id: str) -> ResultCollection | None:
        """Collection for a running or recently settled submission of this orchestrator."""
        collection = self._collections.get(submission_id)
        if collection is None:
            collection = self._settled.get(submission_id)
        return collection

    def open_submission(self, submission_id: str) -> ResultCollection:
        """Rebuild a submission's view from the store.

        Every stored record is inserted as already resolved; no placeholders are
        created and nothing is dispatched.
        """
        collection = ResultCollection(submission_id)
        for prediction in self.store.list_by_submission(submission_id):
            collection.add_resolved(prediction)
        collection.prompt = prompt_from_predictions(collection.predictions())
        return collection

    def view(self, submission_id: str) -> ResultCollection:
        """Live collection when known, otherwise the stored view."""
        collection = self.collection(submission_id)
        return collection if collection is not None else self.open_submission(submission_id)

    def is_complete(self, submission_id: str) -> bool:
        return self.view(submission_id).is_complete()

    def tasks(self, submission_id: str) -> list[asyncio.Task]:
        return list(self._tasks.get(submission_id, []))

    async def settle(self, submission_id: str) -> ResultCollection:
        """Wait for every task of a live submission, then return its collection."""
        tasks = self.tasks(submission_id)
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        return self.view(submission_id)

    # =========================================================
    # Retention
    # =========================================================

    def _release_if_settled(self, submission_id: str, task: asyncio.Task) -> None:
        tasks = self._tasks.get(submission_id)
        if tasks is not None and all(t.done() for t in tasks):
            self._release(submission_id)

    def _release(self, submission_id: str) -> None:
        """Drop tasks and token of a settled submission and retain its collection."""
        self._tasks.pop(submission_id, None)
        self._tokens.pop(submission_id, None)
        collection = self._collections.pop(submission_id, None)
        if collection is None:
            return
        self._settled[submission_id] = collection
        while len(self._settled) > self.settled_retention:
            evicted, _ = self._settled.popitem(last=False)
            logger.debug("Evicted settled submission %s from memory", evicted)

    # =========================================================
    # Cancellation
    # =========================================================

    def cancel(self, submission_id: str) -> int:
        """Stop observing a submission. Returns how many tasks were still running."""
        token = self._tokens.get(submission_id)
        if token is not None:
            token.cancel()

        running = 0
        for task in self._tasks.get(submission_id, []):
            if not task.done():
                task.cancel()
                running += 1

        if running:
            logger.info("Cancelled %d running task(s) for submission %s", running, submission_id)
        return running

    async def aclose(self) -> None:
        """Cancel every live submission and wait for the tasks to unwind."""
        pending: list[asyncio.Task] = []
        for submission_id in list(self._tasks):
            self.cancel(submission_id)
            pending.extend(self._tasks.get(submission_id, []))
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)

    def forget(self, submission_id: str) -> None:
        """Drop live state for a settled submission; stored records remain."""
        self.cancel(submission_id)
        self._collections.pop(submission_id, None)
        self._settled.pop(submission_id, None)
        self._tasks.pop(submission_id, None)
        self._tokens.pop(submission_id, None)
