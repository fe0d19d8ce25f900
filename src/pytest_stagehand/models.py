"""Base Pydantic models for scenario building blocks.

This module defines the foundational model classes used by steps,
fixture options, and execution records. It enforces immutability and
strict schema validation so that a declared step is a plain value:
constructing it has no side effects, and nothing can change it after
construction.
"""

from typing import TYPE_CHECKING, Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

if TYPE_CHECKING:
    from typing import Self


class SchemaModel(BaseModel):
    """Base immutable model for all configuration values.

    Design principles enforced by this model:
        - Immutability: models cannot be modified after creation.
          A step declared once may be reused by reference across
          many scenarios without hidden shared state.
        - Strict schema validation: unknown or extra fields are rejected
          to avoid silent errors caused by typos in step configuration.

    All step and option models must inherit from this class.
    """

    model_config = ConfigDict(
        arbitrary_types_allowed=True,
        frozen=True,
        extra='forbid',
    )

    def with_(self, **changes: Any) -> 'Self':  # noqa: ANN401
        """Return a validated copy with some fields replaced.

        Unlike `model_copy(update=...)`, the changed values go through
        validation again, so the fluent form is as strict as the direct
        constructor.

        Args:
            **changes: Field values to replace.

        Returns:
            A new instance of the same model.
        """
        data = {
            name: getattr(self, name)
            for name in type(self).model_fields
            if name in self.model_fields_set
        }
        data.update(changes)

        return type(self).model_validate(data)


class DescribedMixin(SchemaModel):
    """Mixin providing element self-documentation.

    The fields defined in this model do not affect execution semantics
    and are used for logs, reports and failure messages only.
    """

    title: str | None = Field(
        default=None,
        title='Title',
        description='Short human-readable title of the element.',
    )

    description: str | None = Field(
        default=None,
        title='Description',
        description='Detailed human-readable description of the element.',
    )


class SettingsModel(BaseSettings):
    """Base immutable model for runtime settings.

    Design principles enforced by this model:
        - Immutability: resolved settings cannot be modified after creation.
        - Tolerant schema handling: unknown or extra fields are ignored,
          so unrelated environment variables never break resolution.
    """

    model_config = SettingsConfigDict(
        frozen=True,
        extra='ignore',
    )
