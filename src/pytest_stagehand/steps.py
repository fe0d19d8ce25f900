"""Step definitions and phase roles.

A step is the atomic unit of scenario behavior: an immutable value
object holding its declared configuration, plus one `execute` method
performing all of its side effects. Steps carry no identity beyond
their configuration and are safely reusable by reference across many
scenarios.

Four role types map steps to the phase they belong to:

- `BackgroundStep`: shared setup attached to a context;
- `ArrangeStep`: scenario-specific arrangement;
- `ActStep`: the action against the service boundary;
- `AssertStep`: verification of the observable outcome.

Roles constrain *where* a step may be placed, not *what* it may do
internally.
"""

from abc import abstractmethod
from collections.abc import Callable
from enum import StrEnum
from typing import TYPE_CHECKING, Any, ClassVar

from pydantic import create_model

from pytest_stagehand.models import DescribedMixin, SchemaModel
from pytest_stagehand.values import represent

if TYPE_CHECKING:
    from logging import Logger, LoggerAdapter

if TYPE_CHECKING:
    from pytest_stagehand.context import ScenarioContext
    from pytest_stagehand.values import Value

#: Fields describing a step rather than configuring it.
DESCRIPTIVE_FIELDS = frozenset({'title', 'description'})


class Phase(StrEnum):
    """Scenario phases, declared in execution order."""

    BACKGROUND = 'background'
    ARRANGE = 'arrange'
    ACT = 'act'
    ASSERT = 'assert'

    @classmethod
    def ordered(cls) -> tuple['Phase', ...]:
        """Return all phases in their fixed execution order."""
        return tuple(cls)


class BaseStep(DescribedMixin, SchemaModel):
    """Base class for executable steps.

    Concrete steps declare their configuration as model fields and
    implement `execute`. Construction only validates configuration;
    all side effects happen inside `execute`.

    A step signals its outcome through exceptions:
        - `AssertionError` for an expected business outcome that
          did not hold;
        - `AuthoringError` for data or collaborators never provided;
        - any other exception for a broken fixture or dependency.
    """

    #: Phase the step belongs to.
    phase: ClassVar[Phase]

    @abstractmethod
    def execute(self, context: 'ScenarioContext',
                logger: 'Logger | LoggerAdapter[Logger]') -> None:
        """Perform the step against the scenario context.

        Args:
            context: Context of the running scenario.
            logger: Logger bound to the running scenario.
        """

    def describe(self) -> str:
        """Return the human-readable identity of the step."""
        if self.title:
            return self.title

        return type(self).__name__

    def config(self) -> dict[str, 'Value']:
        """Return the compact declared configuration of the step."""
        return {
            name: represent(getattr(self, name))
            for name in type(self).model_fields
            if name not in DESCRIPTIVE_FIELDS
        }


class BackgroundStep(BaseStep):
    """Step shared by every scenario built from one context."""

    phase: ClassVar[Phase] = Phase.BACKGROUND


class ArrangeStep(BaseStep):
    """Step preparing scenario-specific state."""

    phase: ClassVar[Phase] = Phase.ARRANGE


class ActStep(BaseStep):
    """Step performing the action under test."""

    phase: ClassVar[Phase] = Phase.ACT


class AssertStep(BaseStep):
    """Step verifying the observable outcome."""

    phase: ClassVar[Phase] = Phase.ASSERT


ROLES: dict[Phase, type[BaseStep]] = {
    Phase.BACKGROUND: BackgroundStep,
    Phase.ARRANGE: ArrangeStep,
    Phase.ACT: ActStep,
    Phase.ASSERT: AssertStep,
}

#: The function receives the context, the logger and the declared
#: configuration as keyword arguments.
type StepFunction = Callable[..., None]


class FunctionStep(SchemaModel):
    """Mixin executing a step through a class-level function."""

    #: Callable implementing the step logic.
    function: ClassVar[StepFunction]

    def execute(self, context: 'ScenarioContext',
                logger: 'Logger | LoggerAdapter[Logger]') -> None:
        """Call the bound function with the declared configuration."""
        type(self).function(context, logger, **{
            name: getattr(self, name)
            for name in type(self).model_fields
            if name not in DESCRIPTIVE_FIELDS
        })


def step(phase: Phase | str, *, name: str | None = None,
         **fields: Any) -> 'Callable[[StepFunction], type[BaseStep]]':  # noqa: ANN401
    """Turn a plain function into a step class.

    Configuration fields are declared as keyword arguments of the
    decorator using pydantic field definitions: a `(type, default)`
    tuple, or a bare type for a required field.

    Example:
        ```
        @step('arrange', user=(str, 'Alice'))
        def remember_user(context, logger, user):
            context.set('user', user)

        scenario.arrange(remember_user(user='Bob'))
        ```

    Args:
        phase: Phase the generated step belongs to.
        name: Optional class name, defaults to the function name.
        **fields: Pydantic field definitions of the step configuration.

    Returns:
        A decorator producing a frozen step class.
    """
    role = ROLES[Phase(phase)]

    definitions = {
        field: definition if isinstance(definition, tuple) else (definition, ...)
        for field, definition in fields.items()
    }

    def decorator(function: StepFunction) -> type[BaseStep]:
        return create_model(  # type: ignore[call-overload,no-any-return]
            name or function.__name__,
            __base__=(FunctionStep, role),
            __doc__=function.__doc__,
            __module__=function.__module__,
            function=(ClassVar[StepFunction], staticmethod(function)),
            **definitions,
        )

    return decorator
