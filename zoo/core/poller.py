"""Fixed-interval status poller for async-job predictions.

State machine:
    starting -> processing -> {succeeded, failed}

    Every observation goes through `Prediction.advance`, so a provider that
    reports a backwards or post-terminal status surfaces as `ProtocolError`.

Polling policy:
    - One status query per interval (default 500 ms) until a terminal state.
    - No attempt limit or overall timeout at this layer.
    - A non-200 status response raises immediately and is not retried; callers
      must treat that failure as possibly spurious.

Cancellation:
    A `CancellationToken` is checked before every wait and every fetch, and a
    set token interrupts a wait in progress. The remote job keeps running on
    the provider side; only local observation stops.
"""

import asyncio
import logging
from typing import Callable

from zoo.core.errors import PollCancelled
from zoo.core.models import Prediction


logger = logging.getLogger(__name__)

DEFAULT_POLL_INTERVAL = 0.5


class CancellationToken:
    """One-shot cancellation flag that a poller can await."""

    def __init__(self) -> None:
        self._event = asyncio.Event()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self) -> None:
        self._event.set()

    async def wait(self) -> None:
        await self._event.wait()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise PollCancelled("Polling cancelled")


class PredictionPoller:
    """Drive one async-job Prediction to a terminal state.

    Args:
        adapter: Provider exposing `fetch(id)` and `apply_update(prediction, raw)`.
        interval: Seconds between status queries.
    """

    def __init__(self, adapter, interval: float = DEFAULT_POLL_INTERVAL) -> None:
        self.adapter = adapter
        self.interval = interval

    async def poll(
        self,
        prediction: Prediction,
        token: CancellationToken | None = None,
        on_update: Callable[[Prediction], None] | None = None,
    ) -> Prediction:
        """Poll until `prediction` is terminal, mutating it in place.

        Args:
            prediction: Record returned by the adapter's submission.
            token: Optional cancellation token.
            on_update: Called with the record after the initial state and after
                every status query, including repeated identical statuses.

        Returns:
            The same Prediction object, now terminal.

        Raises:
            ProviderError: A status query returned non-200.
            ProtocolError: Illegal transition or malformed status payload.
            PollCancelled: The token was set.
        """
        self._notify(on_update, prediction)
        ticks = 0

        while not prediction.is_terminal:
            await self._wait(token)
            if token is not None:
                token.raise_if_cancelled()

            raw = await self.adapter.fetch(prediction.id)
            self.adapter.apply_update(prediction, raw)
            ticks += 1
            self._notify(on_update, prediction)

        logger.info(
            "Prediction %s reached %s after %d poll(s)",
            prediction.id,
            prediction.status.value,
            ticks,
        )
        return prediction

    async def _wait(self, token: CancellationToken | None) -> None:
        if token is None:
            await asyncio.sleep(self.interval)
            return
        token.raise_if_cancelled()
        try:
            await asyncio.wait_for(token.wait(), timeout=self.interval)
        except asyncio.TimeoutError:
            return
        raise PollCancelled("Polling cancelled")

    @staticmethod
    def _notify(on_update, prediction: Prediction) -> None:
        if on_update is not None:
            on_update(prediction)
