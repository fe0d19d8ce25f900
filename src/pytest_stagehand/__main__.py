"""CLI utilities for pytest-stagehand.

The commands inspect resolved settings and provision the configured
disposable database outside of a test session, which helps debugging
fixture startup problems.
"""

from click import ClickException, Context, echo, group, option, pass_context, pass_obj, prompt
from pydantic import ValidationError
from yaml import dump

from pytest_stagehand.errors import ProvisioningError
from pytest_stagehand.fixtures import create_database
from pytest_stagehand.reporting import configure_logging, reset_logging
from pytest_stagehand.settings import StagehandSettings


def _dump(data: dict[str, object]) -> str:
    """Render a mapping as YAML."""
    return dump(data, sort_keys=False, allow_unicode=True).rstrip()


def _load_settings(**overrides: object) -> StagehandSettings:
    """Resolve settings from the environment and explicit overrides.

    Raises:
        ClickException: If the settings are invalid.
    """
    try:
        return StagehandSettings().merge(**overrides)
    except ValidationError as error:
        raise ClickException(f'Invalid stagehand settings: {error}') from error


@group(help='Command-line utilities for pytest-stagehand fixtures.')
@pass_context
def cli(ctx: Context) -> None:
    """Root CLI group for pytest-stagehand tools."""
    settings = _load_settings()

    configure_logging(settings.level, settings.log_format)
    ctx.call_on_close(reset_logging)

    ctx.obj = settings


@cli.command(
    name='settings',
    help='Print settings resolved from STAGEHAND_* environment variables.',
)
@pass_obj
def print_settings(settings: StagehandSettings) -> None:
    """Print resolved settings as YAML."""
    echo(_dump(settings.model_dump(mode='json')))


@cli.command(
    name='database',
    help=(
        'Provision the configured disposable database, print its '
        'connection descriptor and tear it down.'
    ),
)
@option(
    '-e', '--engine',
    help='Database engine overriding STAGEHAND_DATABASE_ENGINE.',
    default=None,
)
@option(
    '-i', '--image',
    help='Container image overriding STAGEHAND_DATABASE_IMAGE.',
    default=None,
)
@option(
    '--hold',
    is_flag=True,
    default=False,
    help='Keep the database running until Enter is pressed.',
)
@pass_obj
def provision_database(settings: StagehandSettings,
                       engine: str | None,
                       image: str | None,
                       hold: bool) -> None:  # noqa: FBT001
    """Provision a database and print its descriptor.

    Args:
        settings: Settings resolved by the root group.
        engine: Database engine override.
        image: Container image override.
        hold: Wait for confirmation before teardown.
    """
    settings = settings.merge(database_engine=engine, database_image=image)

    try:
        database = create_database(settings)
        descriptor = database.start()
    except ProvisioningError as error:
        raise ClickException(str(error)) from error

    try:
        echo(_dump({
            'engine': database.engine,
            'url': descriptor.safe_url,
            **descriptor.model_dump(mode='json', exclude_none=True),
        }))

        if hold:
            prompt(
                'Press Enter to release the database',
                default='',
                show_default=False,
            )
    finally:
        database.stop()


if __name__ == '__main__':
    cli()
