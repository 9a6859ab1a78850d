"""Command line interface for careerflow.

    careerflow flows list
    careerflow flows describe generateDocument
    careerflow run getExampleAnswer jobRole="Data Analyst" question="Why us?"
    careerflow run tailorResume --attach resumePdfDataUri=cv.pdf jobDescription="..."
"""

import base64
import json
import mimetypes
from pathlib import Path
from typing import Any, Optional

import click

from careerflow import __version__
from careerflow.cli.commands.settings import settings
from careerflow.cli.logging_config import configure_logging
from careerflow.core.exceptions import (
    CareerflowError,
    ErrorKind,
    FlowDefinitionError,
    FlowNotFoundError,
    RateLimited,
)
from careerflow.core.schema import Field, ListField, ObjectField, describe_field
from careerflow.core.settings import SettingsManager
from careerflow.core.suggestion_utils import format_did_you_mean
from careerflow.flows import create_registry
from careerflow.registry.registry import FlowRegistry
from careerflow.runtime.engine import FlowEngine

# sysexits EX_TEMPFAIL: the caller should retry later
EXIT_RATE_LIMITED = 75

# Error kinds the user can fix by changing the input; always shown in full
_CALLER_ERRORS = {ErrorKind.VALIDATION, ErrorKind.RENDER, ErrorKind.NOT_FOUND}


def infer_type(value: str) -> Any:
    """Infer type from string value.

    Supports:
    - Booleans: 'true', 'false' (case-insensitive)
    - Numbers: integers and floats
    - JSON: arrays and objects starting with '[' or '{'
    - Strings: everything else (default)
    """
    if value.lower() in ("true", "false"):
        return value.lower() == "true"

    try:
        # Try integer first (more restrictive)
        if "." not in value and "e" not in value.lower():
            return int(value)
        return float(value)
    except ValueError:
        pass

    if value.startswith(("[", "{")):
        try:
            return json.loads(value)
        except json.JSONDecodeError:
            pass

    return value


def set_path(data: dict[str, Any], key: str, value: Any) -> None:
    """Set ``value`` at a dotted key, creating intermediate objects.

    Examples:
        >>> data = {}
        >>> set_path(data, "userInput.jobRole", "Engineer")
        >>> data
        {'userInput': {'jobRole': 'Engineer'}}
    """
    parts = key.split(".")
    current = data
    for part in parts[:-1]:
        child = current.get(part)
        if not isinstance(child, dict):
            child = current[part] = {}
        current = child
    current[parts[-1]] = value


def parse_flow_params(args: tuple[str, ...]) -> dict[str, Any]:
    """Parse key=value arguments into an input value.

    Raises:
        click.BadParameter: If an argument is not key=value
    """
    params: dict[str, Any] = {}
    for arg in args:
        key, sep, value = arg.partition("=")
        if not sep or not key:
            raise click.BadParameter(f"Expected key=value, got '{arg}'", param_hint="PARAMS")
        set_path(params, key, infer_type(value))
    return params


def file_to_data_uri(path: Path) -> str:
    """Read a file into a base64 data URI (MIME type guessed from the extension)."""
    mime_type, _ = mimetypes.guess_type(path.name)
    payload = base64.b64encode(path.read_bytes()).decode("ascii")
    return f"data:{mime_type or 'application/octet-stream'};base64,{payload}"


def parse_attachments(attachments: tuple[str, ...]) -> dict[str, Any]:
    """Parse field=FILE options into data URI values."""
    values: dict[str, Any] = {}
    for item in attachments:
        key, sep, filename = item.partition("=")
        if not sep or not key or not filename:
            raise click.BadParameter(f"Expected field=FILE, got '{item}'", param_hint="--attach")
        path = Path(filename).expanduser()
        if not path.is_file():
            raise click.BadParameter(f"File not found: {filename}", param_hint="--attach")
        set_path(values, key, file_to_data_uri(path))
    return values


def _merge(target: dict[str, Any], source: dict[str, Any]) -> dict[str, Any]:
    for key, value in source.items():
        if isinstance(value, dict) and isinstance(target.get(key), dict):
            _merge(target[key], value)
        else:
            target[key] = value
    return target


def _build_registry(ctx: click.Context) -> FlowRegistry:
    obj = ctx.ensure_object(dict)
    if obj.get("registry") is not None:
        return obj["registry"]

    manager: SettingsManager = obj.setdefault("settings_manager", SettingsManager())
    directories = [*manager.load().flows.directories, *obj.get("flows_dirs", ())]
    try:
        registry = create_registry(directories)
    except CareerflowError as e:
        click.echo(f"Error: could not load flows: {e}", err=True)
        ctx.exit(1)
    obj["registry"] = registry
    return registry


def _build_engine(ctx: click.Context) -> FlowEngine:
    obj = ctx.ensure_object(dict)
    if obj.get("engine") is None:
        registry = _build_registry(ctx)
        manager: SettingsManager = obj.setdefault("settings_manager", SettingsManager())
        obj["engine"] = FlowEngine(registry, settings=manager.load())
    return obj["engine"]


def _report_error(ctx: click.Context, error: CareerflowError) -> None:
    verbose = ctx.ensure_object(dict).get("verbose", False)
    if error.kind in _CALLER_ERRORS:
        click.echo(f"Error: {error}", err=True)
        if isinstance(error, FlowNotFoundError) and not error.suggestions:
            click.echo(format_did_you_mean(error.name, [], fallback_items=_build_registry(ctx).names()), err=True)
    else:
        click.echo(f"Error: {error.user_message()}", err=True)
        if verbose:
            click.echo(f"  {error.kind.value}: {error}", err=True)
    ctx.exit(EXIT_RATE_LIMITED if isinstance(error, RateLimited) else 1)


@click.group()
@click.version_option(__version__, prog_name="careerflow")
@click.option("--verbose", "-v", is_flag=True, help="Show progress logs and error details")
@click.option(
    "--flows-dir",
    "flows_dirs",
    multiple=True,
    type=click.Path(exists=True, file_okay=False),
    help="Extra directory of flow definition files (repeatable)",
)
@click.pass_context
def main(ctx: click.Context, verbose: bool, flows_dirs: tuple[str, ...]) -> None:
    """careerflow - typed prompt flows for career documents."""
    obj = ctx.ensure_object(dict)
    obj["verbose"] = verbose
    obj["flows_dirs"] = flows_dirs
    configure_logging(verbose)


@main.group()
def flows() -> None:
    """List and inspect registered flows."""
    pass


@flows.command("list")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
def list_flows(ctx: click.Context, as_json: bool) -> None:
    """List registered flows."""
    registry = _build_registry(ctx)

    if as_json:
        entries = [
            {"name": flow.name, "description": flow.description, "model": flow.provider_config.model}
            for flow in registry
        ]
        click.echo(json.dumps(entries, indent=2))
        return

    if not len(registry):
        click.echo("No flows registered.")
        return

    width = max(len(name) for name in registry.names())
    for flow in registry:
        click.echo(f"{flow.name:<{width}}  {flow.description}")


def _field_lines(schema: ObjectField, indent: int = 2) -> list[str]:
    lines = []
    pad = " " * indent
    for name, field in schema.fields.items():
        line = f"{pad}{name}: {describe_field(field)}"
        if field.description:
            line += f" - {field.description}"
        lines.append(line)
        nested: Optional[Field] = field.items if isinstance(field, ListField) else field
        if isinstance(nested, ObjectField):
            lines.extend(_field_lines(nested, indent + 4))
    return lines


@flows.command()
@click.argument("name")
@click.pass_context
def describe(ctx: click.Context, name: str) -> None:
    """Show a flow's input and output fields."""
    registry = _build_registry(ctx)
    try:
        flow = registry.lookup(name)
    except FlowNotFoundError as e:
        click.echo(f"Flow '{name}' not found.", err=True)
        click.echo(format_did_you_mean(name, e.suggestions, fallback_items=registry.names()), err=True)
        ctx.exit(1)

    click.echo(f"Flow: {flow.name}")
    if flow.description:
        click.echo(f"Description: {flow.description}")
    click.echo(f"Model: {flow.provider_config.model or '(default)'}")
    click.echo(f"Source: {flow.source}")
    click.echo("\nInputs:")
    click.echo("\n".join(_field_lines(flow.input_schema)) or "  (none)")
    click.echo("\nOutputs:")
    click.echo("\n".join(_field_lines(flow.output_schema)))


def _echo_output(output: dict[str, Any], as_json: bool) -> None:
    if as_json:
        click.echo(json.dumps(output, indent=2, ensure_ascii=False))
        return
    if len(output) == 1:
        (value,) = output.values()
        if isinstance(value, str):
            click.echo(value)
            return
    for key, value in output.items():
        text = value if isinstance(value, str) else json.dumps(value, indent=2, ensure_ascii=False)
        click.echo(f"{key}:\n{text}\n")


@main.command()
@click.argument("name")
@click.argument("params", nargs=-1)
@click.option(
    "--input",
    "input_file",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help="JSON file with the input value (key=value arguments override it)",
)
@click.option("--attach", "attachments", multiple=True, metavar="FIELD=FILE", help="Attach a file as a data URI")
@click.option("--model", help="Model to use for this run")
@click.option("--dry-run", is_flag=True, help="Print the rendered prompt without calling the model")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
def run(
    ctx: click.Context,
    name: str,
    params: tuple[str, ...],
    input_file: Optional[Path],
    attachments: tuple[str, ...],
    model: Optional[str],
    dry_run: bool,
    as_json: bool,
) -> None:
    """Run flow NAME with key=value inputs."""
    value: dict[str, Any] = {}
    if input_file is not None:
        try:
            loaded = json.loads(input_file.read_text(encoding="utf-8"))
        except json.JSONDecodeError as e:
            raise click.BadParameter(f"{input_file} is not valid JSON: {e}", param_hint="--input") from e
        if not isinstance(loaded, dict):
            raise click.BadParameter(f"{input_file} must contain a JSON object", param_hint="--input")
        value = loaded
    _merge(value, parse_flow_params(params))
    _merge(value, parse_attachments(attachments))

    engine = _build_engine(ctx)
    try:
        if dry_run:
            prompt = engine.render(name, value)
            described = [attachment.describe() for attachment in prompt.attachments]
            if as_json:
                click.echo(json.dumps({"prompt": prompt.text, "attachments": described}, indent=2))
            else:
                click.echo(prompt.text)
                for item in described:
                    click.echo(f"\n[attachment] {json.dumps(item)}")
            return
        output = engine.invoke(name, value, model=model)
    except FlowDefinitionError as e:
        click.echo(f"Error: {e}", err=True)
        ctx.exit(1)
    except CareerflowError as e:
        _report_error(ctx, e)
        return

    _echo_output(output, as_json)


main.add_command(settings)
