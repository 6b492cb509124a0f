"""Build job completion poller.

Turns the one-shot ``POST builds`` call into a definite outcome by querying
``GET api/v2/builds/{oid}`` at a fixed interval until the build reports
``done`` or ``failed``, or the attempt budget runs out.

The budget is ``ceil(timeout / interval)`` status queries, computed once at
the start of each poll.  There is no pause after the last query.  Fixed
interval rather than backoff: build duration is unpredictable and the caller
already bounds the total wait.

Outcomes:

* ``done`` / ``failed`` -- returned as soon as observed.  A failed *build*
  is a successful *poll*; nothing is raised.
* ``timed_out`` -- returned when the budget is exhausted.  Call
  :meth:`PollResult.raise_for_timeout` to turn it into an exception.
* A failing status query raises :class:`StatusQueryFailedError` at once.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable

import httpx
from pydantic import ValidationError
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    RetryError,
    retry_if_result,
    stop_after_attempt,
    wait_fixed,
)

from dmlib._cancel import run_cancellable
from dmlib.api.client import DatamodelsClient
from dmlib.api.schemas import BuildTask
from dmlib.errors import APIError, StatusQueryFailedError
from dmlib.models import (
    BUILD_DONE,
    TERMINAL_STATUSES,
    BuildOutcome,
    PollConfig,
    PollResult,
)

logger = logging.getLogger(__name__)

Sleep = Callable[[float], Awaitable[None]]


def is_terminal(status: str | None) -> bool:
    """True for ``done`` and ``failed``; unknown values count as in progress."""
    return status in TERMINAL_STATUSES


class BuildPoller:
    """Fixed-interval poller for build tasks.

    Stateless between calls; concurrent polls of different builds may share
    one instance.

    Usage::

        poller = BuildPoller(client, PollConfig(interval=10, timeout=300))
        result = await poller.wait_for_completion(build_task["oid"])
        if result.outcome is BuildOutcome.FAILED:
            ...
    """

    def __init__(
        self,
        client: DatamodelsClient,
        config: PollConfig | None = None,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self._client = client
        self.config = config or PollConfig()
        self._sleep = sleep

    async def get_status(
        self,
        build_id: str,
        cancel: asyncio.Event | None = None,
    ) -> str:
        """Query the current status of *build_id* once.

        Raises:
            StatusQueryFailedError: Transport error, non-2xx, or a body
                without a string ``status``.
        """
        try:
            body = await run_cancellable(
                self._client.get(f"builds/{build_id}"),
                cancel,
                f"status query for build {build_id}",
            )
            return BuildTask.model_validate(body).status
        except (httpx.HTTPError, APIError) as exc:
            logger.error("Error in wait for build %s: %s", build_id, exc)
            raise StatusQueryFailedError(build_id, str(exc)) from exc
        except (ValueError, ValidationError) as exc:
            logger.error("Malformed status response for build %s: %s", build_id, exc)
            raise StatusQueryFailedError(build_id, "malformed status response") from exc

    async def wait_for_completion(
        self,
        build_id: str,
        config: PollConfig | None = None,
        cancel: asyncio.Event | None = None,
    ) -> PollResult:
        """Poll *build_id* until it is terminal or the attempt budget is spent.

        Args:
            build_id: The build task oid.
            config: Overrides the poller's default :class:`PollConfig`.
            cancel: Optional event checked at every suspension point (each
                status query and each pause).

        Returns:
            :class:`PollResult` with outcome ``done``, ``failed`` or
            ``timed_out``.

        Raises:
            StatusQueryFailedError: A status query failed (not retried).
            OperationCancelledError: *cancel* was set.
        """
        config = config or self.config
        max_attempts = config.max_attempts
        queries = 0
        status: str | None = None

        logger.info(
            "Starting %ss wait for build %s at %ss interval, %d attempts",
            config.timeout,
            build_id,
            config.interval,
            max_attempts,
        )

        async def pause(seconds: float) -> None:
            await run_cancellable(
                self._sleep(seconds), cancel, f"pause between polls of build {build_id}"
            )

        def log_pending(retry_state: RetryCallState) -> None:
            logger.info(
                "Build %s is currently in status: %s | %d attempts left",
                build_id,
                status,
                max_attempts - retry_state.attempt_number,
            )

        retrying = AsyncRetrying(
            stop=stop_after_attempt(max_attempts),
            wait=wait_fixed(config.interval),
            retry=retry_if_result(lambda observed: not is_terminal(observed)),
            before_sleep=log_pending,
            sleep=pause,
        )

        try:
            async for attempt in retrying:
                with attempt:
                    status = await self.get_status(build_id, cancel=cancel)
                    queries += 1
                if not attempt.retry_state.outcome.failed:
                    attempt.retry_state.set_result(status)
        except RetryError:
            logger.warning(
                "Build %s still in status %s after %d queries; giving up",
                build_id,
                status,
                queries,
            )
            return PollResult(
                build_id=build_id,
                outcome=BuildOutcome.TIMED_OUT,
                status=status,
                queries=queries,
                remaining_attempts=0,
            )

        outcome = BuildOutcome.DONE if status == BUILD_DONE else BuildOutcome.FAILED
        logger.info("Build %s finished with status %s after %d queries", build_id, status, queries)
        return PollResult(
            build_id=build_id,
            outcome=outcome,
            status=status,
            queries=queries,
            remaining_attempts=max_attempts - (queries - 1),
        )
