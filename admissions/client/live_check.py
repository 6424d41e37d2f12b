"""
Debounced duplicate checking while a student form is being filled in.

Every call to update() supersedes the previous one: the pending check is
cancelled and a generation counter guarantees a result computed for older
input is never applied.
"""

import asyncio
from typing import Any, Awaitable, Callable, Optional, Union

from admissions.config import settings
from admissions.core.logging import get_logger
from admissions.models.enums import DuplicateCheckState, DuplicateSeverity
from admissions.services.duplicates import DuplicateValidationResult

logger = get_logger(__name__)

CheckFn = Callable[..., Awaitable[DuplicateValidationResult]]

SUBMITTABLE_STATES = frozenset({
    DuplicateCheckState.IDLE,
    DuplicateCheckState.CLEAR,
    DuplicateCheckState.WARNED_DUPLICATE,
})


def _state_for(result: DuplicateValidationResult) -> DuplicateCheckState:
    if result.severity == DuplicateSeverity.ERROR:
        return DuplicateCheckState.BLOCKED_DUPLICATE
    if result.severity == DuplicateSeverity.WARNING:
        return DuplicateCheckState.WARNED_DUPLICATE
    return DuplicateCheckState.CLEAR


class DuplicateCheckSession:
    """
    Live duplicate state for one form.

    `check` is an async callable taking (candidate, exclude_id=..., strict=...)
    and returning a DuplicateValidationResult, normally
    StudentRegistry.validate_against_duplicates.
    """

    def __init__(
        self,
        check: CheckFn,
        *,
        debounce: Optional[float] = None,
        exclude_id: Any = None,
    ):
        self._check = check
        self._debounce = (
            debounce if debounce is not None else settings.DUPLICATE_CHECK_DEBOUNCE_MS / 1000
        )
        self._exclude_id = exclude_id
        self._generation = 0
        self._task: Optional[asyncio.Task] = None
        self.state = DuplicateCheckState.IDLE
        self.result = DuplicateValidationResult()

    @classmethod
    def for_registry(cls, registry: Any, **kwargs: Any) -> "DuplicateCheckSession":
        return cls(registry.validate_against_duplicates, **kwargs)

    @property
    def can_submit(self) -> bool:
        return self.state in SUBMITTABLE_STATES

    def update(self, candidate: Union[dict, Any]) -> None:
        """Schedule a non-strict check of the latest form values."""
        self._generation += 1
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self.state = DuplicateCheckState.IDLE
        self.result = DuplicateValidationResult()
        self._task = asyncio.get_running_loop().create_task(self._run(candidate, self._generation))

    async def _run(self, candidate: Any, generation: int) -> None:
        await asyncio.sleep(self._debounce)
        if generation != self._generation:
            return
        self.state = DuplicateCheckState.CHECKING
        result = await self._safe_check(candidate, strict=False)
        if generation != self._generation:
            logger.debug("Discarding stale duplicate check", extra={"generation": generation})
            return
        self._apply(result)

    async def _safe_check(self, candidate: Any, strict: bool) -> DuplicateValidationResult:
        try:
            return await self._check(candidate, exclude_id=self._exclude_id, strict=strict)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            logger.warning("Duplicate check failed, allowing submission", extra={"error": str(exc)})
            return DuplicateValidationResult()

    def _apply(self, result: DuplicateValidationResult) -> None:
        self.result = result
        self.state = _state_for(result)

    async def check_for_submission(self, candidate: Any) -> DuplicateValidationResult:
        """
        Strict check right before saving; pending debounced work is dropped.

        A blocked form stays blocked until its input changes.
        """
        if self.state == DuplicateCheckState.BLOCKED_DUPLICATE:
            return self.result
        self._generation += 1
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self.state = DuplicateCheckState.CHECKING
        result = await self._safe_check(candidate, strict=True)
        self._apply(result)
        return result

    async def wait(self) -> None:
        """Wait for the pending check, if any, to settle."""
        if self._task is not None and not self._task.done():
            await asyncio.wait([self._task])

    async def close(self) -> None:
        self._generation += 1
        if self._task is not None and not self._task.done():
            self._task.cancel()
            await asyncio.wait([self._task])
        self._task = None
