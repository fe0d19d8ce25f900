"""Scenario composition.

A scenario binds a context to ordered arrange, act and assert step
lists; the context contributes its background steps. Running the
scenario executes the phases in their fixed order and returns a result,
verifying it raises the first failure for the test runner.
"""

from typing import TYPE_CHECKING

from pytest_stagehand.errors import StepRoleError
from pytest_stagehand.executor import StepExecutor
from pytest_stagehand.steps import ROLES, ActStep, ArrangeStep, AssertStep, BaseStep, Phase

if TYPE_CHECKING:
    from typing import Self

if TYPE_CHECKING:
    from pytest_stagehand.context import ScenarioContext
    from pytest_stagehand.executor import Plan
    from pytest_stagehand.results import ScenarioResult


class Scenario:
    """One test case expressed as ordered step phases.

    Steps are attached through `arrange`, `act` and `assert_`, each
    accepting only steps of the matching role. A scenario without act
    or assert steps is legal.
    """

    __test__ = False

    def __init__(self, context: 'ScenarioContext', *,
                 title: str | None = None) -> None:
        """Initialize a scenario.

        Args:
            context: Context the scenario runs against.
            title: Optional human-readable title.
        """
        self.context = context
        self.title = title

        self._steps: dict[Phase, list[BaseStep]] = {
            Phase.ARRANGE: [],
            Phase.ACT: [],
            Phase.ASSERT: [],
        }

    def _attach(self, phase: Phase, steps: tuple[BaseStep, ...]) -> 'Self':
        """Append steps to a phase after checking their role.

        Raises:
            StepRoleError: If a step does not belong to the phase.
        """
        role = ROLES[phase]
        for step in steps:
            if not isinstance(step, role):
                raise StepRoleError(
                    f'{type(step).__name__} can not be placed in the {phase} phase',
                )

        self._steps[phase].extend(steps)

        return self

    def arrange(self, *steps: ArrangeStep) -> 'Self':
        """Attach scenario-specific arrangement steps."""
        return self._attach(Phase.ARRANGE, steps)

    def act(self, *steps: ActStep) -> 'Self':
        """Attach steps performing the action under test."""
        return self._attach(Phase.ACT, steps)

    def assert_(self, *steps: AssertStep) -> 'Self':
        """Attach verification steps."""
        return self._attach(Phase.ASSERT, steps)

    def steps(self, phase: Phase | str) -> tuple[BaseStep, ...]:
        """Return the steps of a phase in declaration order."""
        phase = Phase(phase)
        if phase is Phase.BACKGROUND:
            return self.context.background_steps

        return tuple(self._steps[phase])

    def plan(self) -> 'Plan':
        """Return phases with their steps in execution order."""
        return [
            (phase, self.steps(phase))
            for phase in Phase.ordered()
        ]

    def run(self) -> 'ScenarioResult':
        """Execute the scenario without raising for step failures.

        Returns:
            Result of the run.
        """
        executor = StepExecutor(self.context, title=self.title)

        return executor.run(self.plan())

    def verify(self) -> 'ScenarioResult':
        """Execute the scenario and raise its first failure.

        Returns:
            Result of a passing run.

        Raises:
            AssertionError: If an expectation failed.
            StagehandError: If an authoring, infrastructure or fixture
                error stopped the run.
        """
        result = self.run()
        result.raise_for_outcome()

        return result

    __call__ = verify
