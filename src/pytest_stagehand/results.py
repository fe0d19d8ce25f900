"""Scenario execution records.

A scenario run produces one `StepRecord` per declared step, including
the steps that never ran because an earlier one failed, and a
`ScenarioResult` aggregating them. The result is `passed` only if every
step in every phase completed; otherwise it carries the first failure.
"""

from enum import StrEnum
from os import linesep
from typing import Any

from pydantic import Field

from pytest_stagehand.errors import FORMAT_INDENT, ErrorContext, ErrorFormatter, StagehandError
from pytest_stagehand.models import SchemaModel
from pytest_stagehand.steps import Phase  # noqa: TC001


class Outcome(StrEnum):
    """Outcome of a single step or of a whole scenario."""

    PASSED = 'passed'
    #: An expected business outcome did not hold.
    FAILED = 'failed'
    #: The scenario requested data or collaborators never provided.
    AUTHORING_ERROR = 'authoring-error'
    #: The application or database call failed for unrelated reasons.
    INFRASTRUCTURE_ERROR = 'infrastructure-error'
    #: Shared fixture state can no longer be trusted.
    FIXTURE_ERROR = 'fixture-error'
    #: The step was not reached because an earlier step failed.
    NOT_RUN = 'not-run'

    @property
    def failing(self) -> bool:
        """Whether the outcome stops a scenario run."""
        return self not in (Outcome.PASSED, Outcome.NOT_RUN)


class StepRecord(SchemaModel):
    """Execution record of one step."""

    phase: Phase
    index: int = Field(ge=0)
    step: str
    config: dict[str, Any] = Field(default_factory=dict)
    outcome: Outcome
    elapsed: float = 0.0
    error: BaseException | None = None

    def error_context(self, *, scenario: str | None = None,
                      isolation_key: str | None = None,
                      keys: list[str] | None = None) -> ErrorContext:
        """Build the error context describing this step."""
        return ErrorContext(
            scenario=scenario,
            isolation_key=isolation_key,
            phase=self.phase.value,
            step_num=self.index,
            step=self.step,
            keys=keys,
            element={self.step: self.config},
        )


class ScenarioResult(SchemaModel):
    """Aggregated result of one scenario run."""

    title: str | None = None
    isolation_key: str
    records: tuple[StepRecord, ...] = ()
    keys: tuple[str, ...] = ()

    @property
    def failure(self) -> StepRecord | None:
        """Return the first failing record, if any."""
        for record in self.records:
            if record.outcome.failing:
                return record

        return None

    @property
    def passed(self) -> bool:
        """Whether every step completed without failure."""
        return self.failure is None

    @property
    def outcome(self) -> Outcome:
        """Return the overall outcome of the run."""
        if failure := self.failure:
            return failure.outcome

        return Outcome.PASSED

    @property
    def elapsed(self) -> float:
        """Return the total time spent executing steps, in seconds."""
        return sum(record.elapsed for record in self.records)

    def executed(self, phase: Phase | None = None) -> list[StepRecord]:
        """Return records of steps that actually ran, in execution order."""
        return [
            record
            for record in self.records
            if record.outcome is not Outcome.NOT_RUN
            and (phase is None or record.phase is phase)
        ]

    def raise_for_outcome(self) -> None:
        """Raise the first failure of the run, if any.

        Raises:
            AssertionError: If an expectation failed.
            StagehandError: If an authoring, infrastructure or fixture
                error stopped the run.
        """
        failure = self.failure
        if failure is None:
            return

        error_context = failure.error_context(
            scenario=self.title,
            isolation_key=self.isolation_key,
            keys=list(self.keys),
        )

        error = failure.error
        if isinstance(error, StagehandError):
            raise error.with_context(error_context)

        message = f'Expectation fail: {failure.step}'
        if error is not None and (details := str(error)):
            message += f'{linesep}{' ' * FORMAT_INDENT}{details}'

        raise AssertionError(ErrorFormatter.format(message, error_context)) from error
