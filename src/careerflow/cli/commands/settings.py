"""Settings management CLI commands."""

import json
import os

import click

from careerflow.core.settings import ENV_DEFAULT_MODEL, ENV_FLOWS_DIR, CareerflowSettings, SettingsManager


def _manager(ctx: click.Context) -> SettingsManager:
    obj = ctx.ensure_object(dict)
    manager = obj.get("settings_manager")
    if manager is None:
        manager = obj["settings_manager"] = SettingsManager()
    return manager


@click.group()
def settings() -> None:
    """Manage careerflow settings."""
    pass


@settings.command()
@click.pass_context
def init(ctx: click.Context) -> None:
    """Initialize settings file with defaults.

    Creates ~/.careerflow/settings.json with default configuration.
    """
    manager = _manager(ctx)

    if manager.settings_path.exists():
        click.confirm(f"Settings file already exists at {manager.settings_path}. Overwrite?", abort=True)

    default_settings = CareerflowSettings()
    manager.save(default_settings)

    click.echo(f"Created settings file at: {manager.settings_path}")
    click.echo("\nDefault settings:")
    click.echo(json.dumps(default_settings.model_dump(), indent=2))


@settings.command()
@click.pass_context
def show(ctx: click.Context) -> None:
    """Show current settings (with environment overrides applied)."""
    manager = _manager(ctx)
    current = manager.load()

    click.echo(f"Settings file: {manager.settings_path}")
    click.echo("\nCurrent settings:")
    click.echo(json.dumps(current.model_dump(), indent=2))

    for name in (ENV_DEFAULT_MODEL, ENV_FLOWS_DIR):
        if os.getenv(name):
            click.echo(f"\n{name} environment variable is set and overrides the file")


@settings.command("set-model")
@click.argument("model")
@click.pass_context
def set_model(ctx: click.Context, model: str) -> None:
    """Set the default model for flows that don't name one.

    Example:
        careerflow settings set-model gemini-2.5-flash
    """
    _manager(ctx).set_default_model(model)
    click.echo(f"✓ Default model set to: {model}")


@settings.command("add-flows-dir")
@click.argument("directory", type=click.Path(exists=True, file_okay=False, resolve_path=True))
@click.pass_context
def add_flows_dir(ctx: click.Context, directory: str) -> None:
    """Load flow definitions from DIRECTORY on every run."""
    if _manager(ctx).add_flows_directory(directory):
        click.echo(f"✓ Added flows directory: {directory}")
    else:
        click.echo(f"Directory already configured: {directory}")
