"""
Task group for concurrent fan-out / fan-in
"""
import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import AsyncIterator, Awaitable, Callable, Dict, Generic, Hashable, TypeVar

from deckpanel.core.result import Failure, Result, Success

logger = logging.getLogger(__name__)

K = TypeVar("K", bound=Hashable)
T = TypeVar("T")


class FailurePolicy(str, Enum):
    ABORT = "abort"  # first failure cancels everything still running
    SKIP = "skip"    # failures are reported, the rest keep going


@dataclass(frozen=True)
class Outcome(Generic[K, T]):
    key: K
    result: Result[T]


class FanOut(Generic[K, T]):
    """
    Runs independent jobs concurrently and yields their outcomes in
    completion order.

    Every job is spawned up front. A job that raises becomes a Failure
    outcome instead of propagating. With FailurePolicy.ABORT the
    iteration stops after the first failure is yielded and the remaining
    jobs are cancelled; with FailurePolicy.SKIP every job is reported.
    Leaving the iteration early also cancels whatever is still running.
    """

    def __init__(self, policy: FailurePolicy = FailurePolicy.ABORT):
        self.policy = FailurePolicy(policy)

    async def _guard(self, key: K, job: Callable[[], Awaitable[T]]) -> Result[T]:
        try:
            return Success(await job())
        except Exception as e:
            logger.error(f"Job {key} failed: {e}")
            return Failure(str(e) or e.__class__.__name__)

    async def run(self, jobs: Dict[K, Callable[[], Awaitable[T]]]) -> AsyncIterator[Outcome[K, T]]:
        order = {key: index for index, key in enumerate(jobs)}
        tasks = {
            asyncio.create_task(self._guard(key, job), name=f"fanout-{key}"): key
            for key, job in jobs.items()
        }
        pending = set(tasks)

        try:
            while pending:
                done, pending = await asyncio.wait(pending, return_when=asyncio.FIRST_COMPLETED)
                # Tasks finishing in the same tick are reported in submission order
                for task in sorted(done, key=lambda t: order[tasks[t]]):
                    outcome = Outcome(key=tasks[task], result=task.result())
                    yield outcome
                    if not outcome.result.ok and self.policy is FailurePolicy.ABORT:
                        return
        finally:
            unfinished = [task for task in tasks if not task.done()]
            for task in unfinished:
                task.cancel()
            if unfinished:
                logger.info(f"Cancelling {len(unfinished)} unfinished jobs")
                await asyncio.gather(*unfinished, return_exceptions=True)
