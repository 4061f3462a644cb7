"""
Command-line interface for crudforge.

Subcommands: generate, validate, types, dialects, templates.
"""

import argparse
import logging
import sys
from typing import List, Optional

from rich import box
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from . import __version__, generate_from_schema
from .core.config import Feature, GeneratorConfig, load_config
from .core.errors import CrudforgeError
from .core.generator import GenerationOptions, GenerationResult, GenerationStatus
from .core.schema import find_unresolved_references, load_schema
from .core.templates import TemplateCategory, TemplateEngine
from .logging_config import get_logger, setup_logging
from .registry import DialectRegistry, create_type_mapper
from .utils import load_schema_document, write_artifacts

logger = get_logger(__name__)

EXIT_SUCCESS = 0
EXIT_FAILED = 1
EXIT_PARTIAL = 2

UNIVERSAL = "universal"


class CLIError(Exception):
    """Exception raised for CLI-related errors."""

    pass


# Initialize rich console
console = Console()


def build_parser() -> argparse.ArgumentParser:
    """Create the argument parser with every subcommand."""
    parser = argparse.ArgumentParser(
        prog="crudforge",
        description="Generate Spring Boot / JPA CRUD code from table schemas",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  crudforge generate schema.yaml --package com.acme.shop --output-dir out
  crudforge generate schema.yaml --dialect mysql --enable auditing --dry-run
  crudforge validate schema.yaml
  crudforge types --dialect oracle
        """.strip(),
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")
    parser.add_argument("--log-file", metavar="FILE", help="Also write logs to FILE")

    subparsers = parser.add_subparsers(dest="command")

    # generate
    gen = subparsers.add_parser("generate", help="Generate code from a schema")
    gen.add_argument("schema", help="Schema file (YAML or JSON) or http(s) URL")
    _add_config_args(gen)
    gen.add_argument("--package", help="Base Java package for generated code")
    gen.add_argument(
        "--output-dir", "-o", default=".", help="Directory to write files to (default: .)"
    )
    gen.add_argument(
        "--only",
        nargs="+",
        metavar="CATEGORY",
        help="Only render these template categories",
    )
    gen.add_argument(
        "--skip", nargs="+", metavar="CATEGORY", help="Skip these template categories"
    )
    gen.add_argument(
        "--enable", nargs="+", metavar="FEATURE", help="Enable a feature for every table"
    )
    gen.add_argument(
        "--disable", nargs="+", metavar="FEATURE", help="Disable a feature for every table"
    )
    gen.add_argument(
        "--fail-fast", action="store_true", help="Stop scheduling work after the first failure"
    )
    gen.add_argument("--workers", type=int, metavar="N", help="Number of render threads")
    gen.add_argument(
        "--allow-external-refs",
        action="store_true",
        help="Allow foreign keys to tables outside the schema",
    )
    gen.add_argument(
        "--template-dir", metavar="DIR", help="Use templates from DIR instead of the bundled set"
    )
    gen.add_argument(
        "--dry-run", action="store_true", help="List the files that would be written"
    )
    gen.add_argument("--force", action="store_true", help="Overwrite existing files")
    gen.set_defaults(func=_handle_generate)

    # validate
    val = subparsers.add_parser("validate", help="Load and validate a schema")
    val.add_argument("schema", help="Schema file (YAML or JSON) or http(s) URL")
    _add_config_args(val)
    val.set_defaults(func=_handle_validate)

    # types
    types_parser = subparsers.add_parser("types", help="Show the resolved type mapping table")
    _add_config_args(types_parser)
    types_parser.set_defaults(func=_handle_types)

    # dialects
    dialects_parser = subparsers.add_parser("dialects", help="List registered dialects")
    dialects_parser.add_argument("--config", metavar="FILE", help="Configuration file")
    dialects_parser.set_defaults(func=_handle_dialects)

    # templates
    templates_parser = subparsers.add_parser("templates", help="List available templates")
    templates_parser.add_argument("--config", metavar="FILE", help="Configuration file")
    templates_parser.add_argument("--template-dir", metavar="DIR", help="Template directory")
    templates_parser.set_defaults(func=_handle_templates)

    return parser


def _add_config_args(parser: argparse.ArgumentParser):
    parser.add_argument("--config", metavar="FILE", help="Configuration file (YAML or JSON)")
    parser.add_argument(
        "--dialect",
        help=f"Database dialect (name or alias; '{UNIVERSAL}' for the universal table only)",
    )


def main(argv: Optional[List[str]] = None) -> int:
    """
    Run the CLI.

    Args:
        argv: Arguments without the program name (defaults to sys.argv[1:])

    Returns:
        Exit code: 0 success, 1 failure, 2 partial success
    """
    parser = build_parser()
    args = parser.parse_args(argv)

    setup_logging(logging.DEBUG if args.verbose else logging.WARNING, args.log_file)

    if not getattr(args, "func", None):
        parser.print_help()
        return EXIT_FAILED

    try:
        return args.func(args)
    except CLIError as e:
        console.print(f"[red]✗ Error:[/red] {e}")
        return EXIT_FAILED
    except CrudforgeError as e:
        logger.debug("Command failed", exc_info=True)
        console.print(f"[red]✗ {e.kind}:[/red] {e}")
        return EXIT_FAILED


def _load_cli_config(args: argparse.Namespace) -> GeneratorConfig:
    overrides = {}
    if getattr(args, "template_dir", None):
        overrides["template_dir"] = args.template_dir
    return load_config(overrides or None, getattr(args, "config", None))


def _dialect_arg(args: argparse.Namespace) -> Optional[str]:
    """Dialect from --dialect: None means the configured one, '' the universal table."""
    dialect = getattr(args, "dialect", None)
    if dialect is None:
        return None
    return "" if dialect.lower() == UNIVERSAL else dialect


def _parse_categories(values: Optional[List[str]]) -> List[TemplateCategory]:
    try:
        return [TemplateCategory.parse(value) for value in values or []]
    except ValueError as e:
        raise CLIError(str(e)) from e


def _build_options(args: argparse.Namespace) -> GenerationOptions:
    """Translate generate arguments into GenerationOptions."""
    categories = None
    if args.only:
        categories = set(_parse_categories(args.only))
    if args.skip:
        categories = (categories or set(TemplateCategory)) - set(_parse_categories(args.skip))

    overrides = {}
    try:
        for name in args.enable or []:
            overrides[Feature.parse(name)] = True
        for name in args.disable or []:
            feature = Feature.parse(name)
            if overrides.get(feature):
                raise CLIError(f"Feature '{feature.value}' is both enabled and disabled")
            overrides[feature] = False
    except ValueError as e:
        raise CLIError(str(e)) from e

    if args.workers is not None and args.workers < 1:
        raise CLIError("--workers must be at least 1")

    return GenerationOptions(
        package=args.package,
        dialect=_dialect_arg(args),
        categories=categories,
        feature_overrides=overrides,
        fail_fast=True if args.fail_fast else None,
        max_workers=args.workers,
        allow_external_references=args.allow_external_refs,
    )


def _exit_code(status: GenerationStatus) -> int:
    if status == GenerationStatus.SUCCESS:
        return EXIT_SUCCESS
    if status == GenerationStatus.PARTIAL:
        return EXIT_PARTIAL
    return EXIT_FAILED


def _handle_generate(args: argparse.Namespace) -> int:
    """Handle the generate subcommand."""
    config = _load_cli_config(args)
    options = _build_options(args)
    source, raw_schema = load_schema_document(args.schema)

    console.print(f"📄 Loaded: {source}")
    result = generate_from_schema(raw_schema, config, options)

    _print_result(result, dry_run=args.dry_run)

    if result.artifacts and not args.dry_run:
        try:
            written = write_artifacts(result.artifacts, args.output_dir, force=args.force)
        except FileExistsError as e:
            raise CLIError(str(e)) from e
        except (OSError, ValueError) as e:
            raise CLIError(f"Failed to write output: {e}") from e
        console.print(f"[green]✓[/green] Wrote {len(written)} file(s) to {args.output_dir}")

    return _exit_code(result.status)


def _print_result(result: GenerationResult, dry_run: bool = False):
    """Print artifacts, failures and warnings of a run."""
    if result.artifacts:
        table = Table(
            title="📦 Would write" if dry_run else "📦 Generated",
            box=box.ROUNDED,
            title_style="bold cyan",
        )
        table.add_column("Path", style="green")
        table.add_column("Template", style="cyan")
        table.add_column("Table", style="blue")
        table.add_column("Lines", justify="right", style="dim")
        for artifact in result.artifacts:
            table.add_row(
                artifact.path,
                artifact.template_id,
                artifact.table or "[dim]project[/dim]",
                str(artifact.content.count("\n")),
            )
        console.print(table)

    if result.failures:
        _print_failures(result.failures)

    for warning in result.warnings:
        console.print(f"[yellow]⚠️  {warning}[/yellow]")

    style = {
        GenerationStatus.SUCCESS: "green",
        GenerationStatus.PARTIAL: "yellow",
        GenerationStatus.FAILED: "red",
    }[result.status]
    summary = (
        f"[bold]Status:[/bold] [{style}]{result.status.value}[/{style}]\n"
        f"[bold]Artifacts:[/bold] {len(result.artifacts)}\n"
        f"[bold]Failures:[/bold] {len(result.failures)}"
    )
    if result.metadata.get("skipped"):
        summary += f"\n[bold]Skipped:[/bold] {result.metadata['skipped']}"
    console.print(Panel(summary, title="🔧 Generation", border_style=style))


def _print_failures(failures):
    table = Table(title="❌ Failures", box=box.ROUNDED, title_style="bold red")
    table.add_column("Table", style="bold")
    table.add_column("Field")
    table.add_column("Template", style="cyan")
    table.add_column("Error", style="red")
    table.add_column("Message")
    for failure in failures:
        table.add_row(
            failure.table or "-",
            failure.error.field or "-",
            failure.template or "-",
            failure.kind,
            failure.message,
        )
    console.print(table)


def _handle_validate(args: argparse.Namespace) -> int:
    """Handle the validate subcommand."""
    config = _load_cli_config(args)
    registry = DialectRegistry.from_config(config)
    dialect = _dialect_arg(args)
    mapper = create_type_mapper(config, dialect, registry)

    source, raw_schema = load_schema_document(args.schema)
    console.print(f"📄 Loaded: {source}")
    loaded = load_schema(raw_schema, mapper, config.features)
    unresolved = find_unresolved_references(loaded.tables)

    if loaded.tables:
        table = Table(title="📋 Tables", box=box.ROUNDED, title_style="bold cyan")
        table.add_column("Table", style="bold green")
        table.add_column("Fields", justify="right")
        table.add_column("Primary key", style="cyan")
        table.add_column("References", style="blue")
        table.add_column("Features", style="magenta")
        for descriptor in loaded.tables:
            features = [f.value for f in descriptor.features.enabled_features()]
            table.add_row(
                descriptor.name,
                str(len(descriptor.fields)),
                descriptor.primary_key.name,
                ", ".join(sorted(descriptor.referenced_tables)) or "[dim]none[/dim]",
                ", ".join(features) or "[dim]none[/dim]",
            )
        console.print(table)

    errors = list(loaded.errors)
    for table_errors in unresolved.values():
        errors.extend(table_errors)

    if errors:
        err_table = Table(title="❌ Problems", box=box.ROUNDED, title_style="bold red")
        err_table.add_column("Error", style="red")
        err_table.add_column("Location", style="bold")
        err_table.add_column("Message")
        for error in errors:
            err_table.add_row(error.kind, error.location() or "-", error.message)
        console.print(err_table)

    valid = len(loaded.tables) - len(unresolved)
    console.print(
        f"[bold]{valid}[/bold] valid table(s), [bold]{len(loaded.errors) + len(unresolved)}[/bold] rejected"
        f" (mapper: {mapper.dialect or UNIVERSAL})"
    )
    if not errors:
        return EXIT_SUCCESS
    return EXIT_PARTIAL if valid else EXIT_FAILED


def _handle_types(args: argparse.Namespace) -> int:
    """Handle the types subcommand."""
    config = _load_cli_config(args)
    mapper = create_type_mapper(config, _dialect_arg(args))

    table = Table(
        title=f"🗂  Type mappings ({mapper.dialect or UNIVERSAL})",
        box=box.ROUNDED,
        title_style="bold cyan",
    )
    table.add_column("SQL type", style="bold green", no_wrap=True)
    table.add_column("Java type", style="cyan")
    table.add_column("Column type")
    table.add_column("Parameters", style="blue")
    table.add_column("Source", style="dim")

    for name in mapper.supported_types():
        entry = mapper.lookup(name)
        params = [
            f"{p}={entry.defaults[p]}" if p in entry.defaults else p
            for p in sorted(entry.accepted_parameters)
        ]
        table.add_row(
            name,
            entry.java_type,
            entry.column_type,
            ", ".join(params) or "[dim]none[/dim]",
            entry.source,
        )

    console.print(table)
    return EXIT_SUCCESS


def _handle_dialects(args: argparse.Namespace) -> int:
    """Handle the dialects subcommand."""
    config = _load_cli_config(args)
    registry = DialectRegistry.from_config(config)

    table = Table(title="📋 Dialects", box=box.ROUNDED, title_style="bold cyan")
    table.add_column("Dialect", style="bold green", no_wrap=True)
    table.add_column("Aliases", style="blue")
    table.add_column("Overrides", justify="right")
    table.add_column("Description", style="dim")

    default = config.dialect.lower() if config.dialect else ""
    for name in registry.list_dialects():
        info = registry.get_dialect_info(name)
        marker = " [yellow](default)[/yellow]" if default in [name] + info["aliases"] else ""
        table.add_row(
            f"{name}{marker}",
            ", ".join(info["aliases"]) or "[dim]none[/dim]",
            str(len(info["overrides"])),
            info["description"],
        )

    console.print(table)
    return EXIT_SUCCESS


def _handle_templates(args: argparse.Namespace) -> int:
    """Handle the templates subcommand."""
    config = _load_cli_config(args)
    engine = TemplateEngine(config.template_dir)
    templates = engine.load_manifest()

    table = Table(
        title=f"📄 Templates ({engine.template_dir})", box=box.ROUNDED, title_style="bold cyan"
    )
    table.add_column("Id", style="bold green", no_wrap=True)
    table.add_column("Category", style="cyan")
    table.add_column("Scope")
    table.add_column("Requires", style="magenta")
    table.add_column("Output path", style="dim")

    for template in templates:
        table.add_row(
            template.id,
            template.category.value,
            template.scope.value,
            template.requires.value if template.requires else "[dim]-[/dim]",
            template.path,
        )

    console.print(table)
    return EXIT_SUCCESS


if __name__ == "__main__":
    sys.exit(main())
