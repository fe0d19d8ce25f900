"""Runtime settings.

Settings are resolved from `STAGEHAND_*` environment variables and may
be overridden by pytest command-line options or ini keys. They cover
database provisioning and logging only; collaborator substitutions are
declared in code through `ServiceOptions`.
"""

from logging import getLevelNamesMapping
from typing import TYPE_CHECKING, Literal

from pydantic import Field, model_validator
from pydantic_settings import SettingsConfigDict

from pytest_stagehand.models import SettingsModel

if TYPE_CHECKING:
    from typing import Self

DEFAULT_IMAGE = 'postgres:16-alpine'


class StagehandSettings(SettingsModel):
    """Settings of the database fixture and execution logging."""

    model_config = SettingsConfigDict(
        env_prefix='STAGEHAND_',
        frozen=True,
        extra='ignore',
    )

    database_engine: str = Field(
        default='postgres',
        title='Database engine',
        description='Name of the database engine provisioned for the session.',
    )

    database_image: str = Field(
        default=DEFAULT_IMAGE,
        title='Database image',
        description='Container image (and version) of the database engine.',
    )

    startup_timeout: float = Field(
        default=60.0,
        gt=0,
        title='Startup timeout',
        description='Seconds to wait for the database to become reachable.',
    )

    poll_interval: float = Field(
        default=0.5,
        gt=0,
        title='Poll interval',
        description='Seconds between database reachability probes.',
    )

    log_level: str = Field(
        default='INFO',
        title='Log level',
        description='Level of the pytest_stagehand logger.',
    )

    log_format: Literal['text', 'json'] = Field(
        default='text',
        title='Log format',
        description='Rendering of structured execution records.',
    )

    @model_validator(mode='after')
    def check_log_level(self) -> 'Self':
        """Check that the log level names a standard logging level.

        Raises:
            ValueError: If the level is unknown.
        """
        if self.log_level.upper() in getLevelNamesMapping():
            return self

        raise ValueError(f'Unknown log level {self.log_level!r}')

    @property
    def level(self) -> int:
        """Return the numeric logging level."""
        return getLevelNamesMapping()[self.log_level.upper()]

    def merge(self, **overrides: object) -> 'StagehandSettings':
        """Return settings with non-empty overrides applied.

        Values set to `None` are ignored, so unset command-line options
        keep the environment value.
        """
        updates = {
            name: value
            for name, value in overrides.items()
            if value is not None
        }
        if not updates:
            return self

        return type(self).model_validate({
            **self.model_dump(),
            **updates,
        })
