from __future__ import annotations

from collections.abc import Awaitable, Callable
from typing import TypeVar

import structlog

logger = structlog.get_logger(__name__)

T = TypeVar("T")


class SagaCompensationError(Exception):
    """A compensating action failed; state is left partially applied."""

    def __init__(self, *, saga: str, compensation_step: str, failed_step: str, cause: BaseException):
        super().__init__(
            f"{saga}: compensation of '{compensation_step}' failed after '{failed_step}' failed"
        )
        self.saga = saga
        self.compensation_step = compensation_step
        self.failed_step = failed_step
        self.cause = cause


class Saga:
    """Ordered forward steps, each with an optional compensating action.

    When a step raises or is cancelled, the compensations of the steps that
    already completed run in reverse order and the step's exception (or the
    CancelledError) is re-raised. If a compensation raises,
    SagaCompensationError is raised instead and the remaining compensations
    are skipped.
    """

    def __init__(self, name: str) -> None:
        self.name = name
        self._compensations: list[tuple[str, Callable[[], Awaitable[object]]]] = []

    @property
    def pending_compensations(self) -> list[str]:
        return [step for step, _ in self._compensations]

    async def step(
        self,
        name: str,
        action: Callable[[], Awaitable[T]],
        *,
        compensate: Callable[[], Awaitable[object]] | None = None,
    ) -> T:
        try:
            result = await action()
        except BaseException as exc:
            # Cancellation mid-step still has to undo what already happened.
            await self._rollback(failed_step=name, cause=exc)
            raise

        if compensate is not None:
            self._compensations.append((name, compensate))
        return result

    async def _rollback(self, *, failed_step: str, cause: BaseException) -> None:
        while self._compensations:
            step_name, compensate = self._compensations.pop()
            logger.info(
                "saga_compensation_started",
                saga=self.name,
                compensation_step=step_name,
                failed_step=failed_step,
            )
            try:
                await compensate()
            except Exception as exc:
                raise SagaCompensationError(
                    saga=self.name,
                    compensation_step=step_name,
                    failed_step=failed_step,
                    cause=cause,
                ) from exc
