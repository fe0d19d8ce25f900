"""Step executor.

The executor drives one scenario run: phases strictly in the order
background, arrange, act, assert, and steps within a phase in
declaration order. It logs each phase entry and each step, times every
step, and stops at the first failure (fail-fast), recording all later
steps as not run.

Exceptions raised by steps are classified, never swallowed silently:

- `AssertionError` is an assertion failure;
- `AuthoringError` and `FixtureError` keep their own outcome; a
  `FixtureCorrupted` error is also escalated through the context to
  the fixture owning the shared state;
- `InfrastructureError` and any other `Exception` are infrastructure
  errors, the latter wrapped into `InfrastructureError`;
- anything that is not an `Exception` (interrupts, runner
  cancellation) propagates after the context is released.
"""

import logging
from time import perf_counter
from typing import TYPE_CHECKING

from pytest_stagehand.errors import (
    AuthoringError,
    FixtureCorrupted,
    FixtureError,
    InfrastructureError,
    StagehandError,
)
from pytest_stagehand.reporting import event
from pytest_stagehand.results import Outcome, ScenarioResult, StepRecord

if TYPE_CHECKING:
    from collections.abc import Sequence
    from logging import Logger, LoggerAdapter

if TYPE_CHECKING:
    from pytest_stagehand.context import ScenarioContext
    from pytest_stagehand.steps import BaseStep, Phase

#: Ordered phases with their steps.
type Plan = Sequence[tuple[Phase, Sequence[BaseStep]]]


def classify(error: BaseException) -> Outcome:
    """Map a step exception to its outcome.

    Args:
        error: Exception raised by a step.

    Returns:
        Outcome describing the failure.
    """
    if isinstance(error, AssertionError):
        return Outcome.FAILED

    if isinstance(error, AuthoringError):
        return Outcome.AUTHORING_ERROR

    if isinstance(error, FixtureError):
        return Outcome.FIXTURE_ERROR

    return Outcome.INFRASTRUCTURE_ERROR


class StepExecutor:
    """Sequential executor of one scenario plan.

    An executor is bound to one context and runs one plan at a time;
    the context refuses a second concurrent run.
    """

    def __init__(self, context: 'ScenarioContext', *,
                 title: str | None = None,
                 logger: 'Logger | LoggerAdapter[Logger] | None' = None) -> None:
        """Initialize an executor.

        Args:
            context: Context of the scenario.
            title: Optional human-readable scenario title.
            logger: Logger for execution events; defaults to the
                context's logger.
        """
        self.context = context
        self.title = title
        self.logger = logger or context.logger

    def run_step(self, phase: 'Phase', index: int, step: 'BaseStep') -> StepRecord:
        """Execute a single step with unified error handling.

        Args:
            phase: Phase the step runs in.
            index: Position of the step within the phase.
            step: Step to execute.

        Returns:
            Execution record of the step.
        """
        description = step.describe()
        config = step.config()

        event(
            self.logger, f'{phase} step {index + 1}: {description}',
            level=logging.DEBUG,
            event='step.start',
            scenario=self.title,
            phase=phase,
            index=index,
            step=description,
        )

        error: BaseException | None = None
        outcome = Outcome.PASSED

        started = perf_counter()
        try:
            step.execute(self.context, self.logger)

        except AssertionError as base:
            error, outcome = base, Outcome.FAILED

        except FixtureCorrupted as base:
            error, outcome = base, Outcome.FIXTURE_ERROR
            self.context.escalate(base)

        except StagehandError as base:
            error, outcome = base, classify(base)

        except Exception as base:  # noqa: BLE001
            error = InfrastructureError(f'{base!r}')
            error.__cause__ = base
            outcome = Outcome.INFRASTRUCTURE_ERROR

        elapsed = perf_counter() - started

        record = StepRecord(
            phase=phase,
            index=index,
            step=description,
            config=config,
            outcome=outcome,
            elapsed=elapsed,
            error=error,
        )

        event(
            self.logger, f'{phase} step {index + 1} {outcome}: {description}',
            level=logging.INFO if outcome is Outcome.PASSED else logging.ERROR,
            event='step',
            scenario=self.title,
            isolation_key=self.context.isolation_key,
            phase=phase,
            index=index,
            step=description,
            config=config,
            elapsed=elapsed,
            outcome=outcome,
            error=repr(error) if error is not None else None,
        )

        return record

    def skip(self, phase: 'Phase', index: int, step: 'BaseStep') -> StepRecord:
        """Record a step that was not reached."""
        return StepRecord(
            phase=phase,
            index=index,
            step=step.describe(),
            config=step.config(),
            outcome=Outcome.NOT_RUN,
        )

    def run(self, plan: Plan) -> ScenarioResult:
        """Execute a plan phase by phase.

        Args:
            plan: Phases in execution order with their steps.

        Returns:
            Result of the run carrying every step record.
        """
        records: list[StepRecord] = []
        failed = False

        self.context.acquire()
        try:
            event(
                self.logger, f'scenario started: {self.title or "<unnamed>"}',
                event='scenario.start',
                scenario=self.title,
                isolation_key=self.context.isolation_key,
            )

            for phase, steps in plan:
                if failed:
                    records.extend(
                        self.skip(phase, index, step)
                        for index, step in enumerate(steps)
                    )
                    continue

                event(
                    self.logger, f'entering {phase} phase',
                    event='phase.enter',
                    scenario=self.title,
                    phase=phase,
                    steps=len(steps),
                )

                for index, step in enumerate(steps):
                    if failed:
                        records.append(self.skip(phase, index, step))
                        continue

                    record = self.run_step(phase, index, step)
                    records.append(record)
                    failed = record.outcome.failing

            result = ScenarioResult(
                title=self.title,
                isolation_key=self.context.isolation_key,
                records=tuple(records),
                keys=tuple(self.context.keys()),
            )

            event(
                self.logger, f'scenario finished: {result.outcome}',
                event='scenario.finish',
                scenario=self.title,
                isolation_key=self.context.isolation_key,
                outcome=result.outcome,
                elapsed=result.elapsed,
            )

            return result

        except BaseException:
            self.context.close()
            raise

        finally:
            self.context.release()
