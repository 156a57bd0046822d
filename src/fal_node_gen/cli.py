"""CLI entry point for fal-node-gen."""

import logging
from pathlib import Path

import click

from fal_node_gen.config import DEFAULT_NODE_NAME, ApiKeyHandling, GeneratorSettings, get_settings
from fal_node_gen.errors import FalNodeGenError
from fal_node_gen.generator.node import NodeCodeGenerator, NodeConfig, select_fields
from fal_node_gen.generator.package import write_files, write_zip
from fal_node_gen.generator.validator import validate_files
from fal_node_gen.parser.base import ParameterSpec, ParsedApiModel
from fal_node_gen.parser.detect import parse_documentation

logger = logging.getLogger(__name__)


def _parse_doc(doc_path: Path) -> tuple[ParsedApiModel, str]:
    """Parse a documentation file, turning unusable results into CLI errors."""
    text = doc_path.read_text(encoding="utf-8").strip()
    if not text:
        raise click.ClickException("Documentation file is empty.")

    result = parse_documentation(text)
    if result.error:
        raise click.ClickException(f"Failed to parse documentation: {result.error}")
    try:
        model = result.require_parameters()
    except FalNodeGenError as e:
        raise click.ClickException(str(e)) from e
    return model, result.source_format


def _describe(spec: ParameterSpec) -> str:
    parts = [f"{spec.name:<24}", f"{spec.type.value:<8}", "required" if spec.required else "optional"]
    if spec.enum:
        parts.append(f"options={', '.join(str(v) for v in spec.enum)}")
    if spec.min is not None or spec.max is not None:
        low = "min" if spec.min is None else f"{spec.min:g}"
        high = "max" if spec.max is None else f"{spec.max:g}"
        parts.append(f"range={low}-{high}")
    if spec.default is not None:
        parts.append(f"default={spec.default!r}")
    return "  ".join(parts)


def _node_name(name: str | None, settings: GeneratorSettings, model: ParsedApiModel) -> str:
    if name:
        return name
    if settings.node_name:
        return settings.node_name
    if model.model_name:
        return model.model_name.replace("_", " ")
    return DEFAULT_NODE_NAME


@click.group()
@click.option("-v", "--verbose", is_flag=True, help="Enable debug logging.")
@click.pass_context
def main(ctx: click.Context, verbose: bool):
    """fal-node-gen: generate ComfyUI custom nodes from Fal.ai API docs."""
    try:
        settings = get_settings()
    except ValueError as e:
        raise click.ClickException(f"Invalid configuration: {e}") from e

    level = logging.getLevelName(settings.log_level)
    if verbose or not isinstance(level, int):
        level = logging.DEBUG if verbose else logging.WARNING
    logging.basicConfig(level=level, format="%(levelname)s %(name)s: %(message)s")
    ctx.obj = settings


@main.command()
@click.argument("doc_path", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--json", "as_json", is_flag=True, help="Print the parsed schema as JSON.")
def parse(doc_path: Path, as_json: bool):
    """Parse API documentation and list the extracted parameters."""
    model, source_format = _parse_doc(doc_path)

    if as_json:
        click.echo(model.model_dump_json(indent=2))
        return

    click.echo(f"Format: {source_format}")
    click.echo(f"Model: {model.model_name or '-'}")
    click.echo(f"Endpoint: {model.endpoint or '-'}")
    click.echo(f"Output: {model.output_type.value}")
    click.echo(f"Found {len(model.parameters)} parameters.")
    for spec in model.parameters.values():
        click.echo(f"  {_describe(spec)}")


@main.command()
@click.argument("doc_path", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("-o", "--output", required=True, type=click.Path(file_okay=False, path_type=Path), help="Output directory for the node files.")
@click.option("--name", default=None, help="Node display name (defaults to the documented model name).")
@click.option("--category", default=None, help="ComfyUI menu category.")
@click.option("--api-key-handling", default=None, type=click.Choice([h.value for h in ApiKeyHandling]), help="How the node obtains its Fal.ai API key.")
@click.option("-f", "--field", "fields", multiple=True, help="Parameter to expose as a node input (repeatable). Defaults to the required ones.")
@click.option("--all-fields", is_flag=True, help="Expose every parameter.")
@click.option("--zip", "as_zip", is_flag=True, help="Write a zip archive instead of individual files.")
@click.option("--append", is_flag=True, help="Keep files that already exist in the output directory.")
@click.pass_obj
def generate(
    settings: GeneratorSettings,
    doc_path: Path,
    output: Path,
    name: str | None,
    category: str | None,
    api_key_handling: str | None,
    fields: tuple[str, ...],
    all_fields: bool,
    as_zip: bool,
    append: bool,
):
    """Generate a ComfyUI node package from API documentation."""
    click.echo(f"Parsing {doc_path}...")
    model, source_format = _parse_doc(doc_path)
    click.echo(f"Found {len(model.parameters)} parameters ({source_format}).")

    try:
        selected = select_fields(model, fields, all_fields=all_fields)
        config = NodeConfig(
            node_name=_node_name(name, settings, model),
            category=category or settings.category,
            api_key_handling=ApiKeyHandling(api_key_handling) if api_key_handling else settings.api_key_handling,
        )
        generator = NodeCodeGenerator(model, selected, config)
        files = generator.generate()
    except (FalNodeGenError, ValueError) as e:
        raise click.ClickException(str(e)) from e

    click.echo(f"Generating node '{config.node_name}' with {len(selected)} inputs: {', '.join(selected)}")
    errors = validate_files(files)
    if errors:
        for fname, err in errors.items():
            click.echo(f"  {fname}: {err}", err=True)
        raise click.ClickException("Generated files failed validation.")

    if as_zip:
        zip_path = write_zip(files, output, generator.module_name)
        click.echo(f"Node package saved to {zip_path}")
        return

    written = write_files(files, output, overwrite=not append)
    for file_path in written:
        click.echo(f"  Created {file_path}")
    logger.debug("Skipped %d existing files", len(files) - len(written))
    click.echo(f"Generated {len(written)} files in {output}")
