"""Loom CLI - Main Entry Point.

The `loom` command resolves application manifests.

Commands:
    validate - Resolve and report success or the first failure
    inspect  - Show the resolved application
    graph    - Show the dependency graph
    plan     - Show build steps in dependency order
"""

import json
import logging
import sys
from typing import Optional, Tuple

import click

from . import __version__, __cli_name__
from ..errors import ResolutionError
from .utils.colors import (
    success, error, warning, dim, bold,
    banner, section, kv, bullet, step, table,
    _ARROW, _CHECK, _CROSS, _LOCK,
)


# ═══════════════════════════════════════════════════════════════════════════
# Custom Click help formatter
# ═══════════════════════════════════════════════════════════════════════════


class LoomGroup(click.Group):
    """Click group subclass with branded help output."""

    def format_help(self, ctx: click.Context, formatter: click.HelpFormatter) -> None:
        if ctx.parent is None:
            banner("Loom", subtitle=f"v{__version__}  {_CHECK}  manifest resolution for wasm apps")
            click.echo()

        super().format_help(ctx, formatter)

    def format_commands(
        self, ctx: click.Context, formatter: click.HelpFormatter
    ) -> None:
        """Format command listing with aligned columns."""
        commands = []
        for subcommand in self.list_commands(ctx):
            cmd = self.get_command(ctx, subcommand)
            if cmd is None or cmd.hidden:
                continue
            commands.append((subcommand, cmd.get_short_help_str(limit=48)))

        if commands:
            with formatter.section(click.style("Commands", fg="cyan", bold=True)):
                max_len = max(len(c[0]) for c in commands) + 2
                for name, help_text in commands:
                    styled_name = click.style(name.ljust(max_len), fg="green")
                    formatter.write(f"  {styled_name} {help_text}\n")


@click.group(cls=LoomGroup)
@click.version_option(version=__version__, prog_name=__cli_name__)
@click.option('--verbose', '-v', is_flag=True, help='Verbose output (debug logging)')
@click.option('--quiet', '-q', is_flag=True, help='Minimal output')
@click.pass_context
def cli(ctx, verbose: bool, quiet: bool):
    """Resolve WebAssembly application manifests.

    \b
    Quick start:
      loom validate spin.toml
      loom inspect spin.toml --var api_key=secret
      loom graph spin.toml --dot
      loom plan spin.toml
    """
    ctx.ensure_object(dict)
    ctx.obj['verbose'] = verbose
    ctx.obj['quiet'] = quiet

    level = logging.DEBUG if verbose else logging.ERROR if quiet else logging.WARNING
    logging.basicConfig(level=level, format="%(levelname)s %(name)s: %(message)s")


def resolve_options(func):
    """Options shared by every resolving command."""
    func = click.argument('manifests', nargs=-1, required=True, type=click.Path(exists=True, dir_okay=False))(func)
    func = click.option('--var', 'variables', multiple=True, metavar='NAME=VALUE', help='Supply a variable value (repeatable)')(func)
    func = click.option('--env-file', type=click.Path(exists=True, dir_okay=False), help='.env file with LOOM_VARIABLE_* values and LOOM_* settings')(func)
    func = click.option('--registry-index', type=click.Path(exists=True, dir_okay=False), help='YAML/JSON registry index for package dependencies')(func)
    func = click.option('--config', 'config_path', type=click.Path(exists=True, dir_okay=False), help='YAML/JSON resolver config file')(func)
    return func


def _resolve(
    manifests: Tuple[str, ...],
    variables: Tuple[str, ...],
    env_file: Optional[str],
    registry_index: Optional[str],
    config_path: Optional[str],
):
    from .commands.resolve import resolve_manifests

    try:
        return resolve_manifests(
            list(manifests),
            var_options=variables,
            env_file=env_file,
            registry_index=registry_index,
            config_path=config_path,
        )
    except ResolutionError as e:
        error(f"  {_CROSS} Resolution failed")
        error(e.format_error())
        sys.exit(1)


# ============================================================================
# Commands
# ============================================================================


@cli.command('validate')
@resolve_options
@click.pass_context
def validate(ctx, manifests, variables, env_file, registry_index, config_path):
    """
    Resolve manifests and report the outcome.

    Examples:
      loom validate spin.toml
      loom validate base.toml overrides.toml --var region=eu
    """
    app = _resolve(manifests, variables, env_file, registry_index, config_path)

    if not ctx.obj['quiet']:
        click.echo()
        success(f"  {_CHECK} {app.name} resolved")
        kv("Components", str(len(app.components)))
        kv("Triggers", str(len(app.triggers)))
        kv("Variables", str(len(app.variables)))
        kv("Fingerprint", app.fingerprint[:16])
        if app.warnings:
            click.echo()
            for message in app.warnings:
                warning(f"  ! {message}")


@cli.command('inspect')
@resolve_options
@click.option('--json', 'as_json', is_flag=True, help='Output the resolved application as JSON')
@click.option('--show-secrets', is_flag=True, help='Do not redact secret variable values')
@click.pass_context
def inspect(ctx, manifests, variables, env_file, registry_index, config_path, as_json, show_secrets):
    """
    Show the resolved application.

    Secret variables are redacted unless --show-secrets is given.

    Examples:
      loom inspect spin.toml
      loom inspect spin.toml --json
    """
    app = _resolve(manifests, variables, env_file, registry_index, config_path)

    if as_json:
        click.echo(app.to_json(redact=not show_secrets))
        return

    data = app.to_dict(redact=not show_secrets)

    click.echo()
    section(f"Application {app.name}")
    kv("Version", app.version or "-")
    if app.description:
        kv("Description", app.description)
    kv("Fingerprint", app.fingerprint)

    if data["variables"]:
        click.echo()
        section("Variables")
        for name, value in data["variables"].items():
            marker = f" {_LOCK}" if app.variables.is_secret(name) else ""
            kv(name, f"{value}{marker}")

    click.echo()
    section("Triggers")
    for trigger in app.triggers:
        suffix = dim(" (inline)") if trigger.inline else ""
        bullet(f"{trigger.kind} {_ARROW} {trigger.component}{suffix}")

    click.echo()
    section("Components")
    table(
        ["Component", "Source", "Dependencies", "Inherits from"],
        [
            [
                c.name,
                c.source.kind,
                str(len(c.dependencies)),
                ", ".join(c.inherited_from) or "-",
            ]
            for c in app.components
        ],
    )

    if app.warnings:
        click.echo()
        for message in app.warnings:
            warning(f"  ! {message}")


@cli.command('graph')
@resolve_options
@click.option('--dot', is_flag=True, help='Output Graphviz DOT')
@click.pass_context
def graph(ctx, manifests, variables, env_file, registry_index, config_path, dot):
    """
    Show the dependency graph.

    Examples:
      loom graph spin.toml
      loom graph spin.toml --dot | dot -Tsvg > deps.svg
    """
    from .commands.resolve import application_graph

    app = _resolve(manifests, variables, env_file, registry_index, config_path)

    if dot:
        click.echo(application_graph(app).to_dot())
        return

    click.echo()
    section("Dependency graph")
    for component in app.components:
        click.echo(f"  {bold(component.name)}")
        for key, dependency in sorted(component.dependencies.items()):
            bullet(f"{key} {_ARROW} {dependency.target}", indent=4)


@cli.command('plan')
@resolve_options
@click.option('--json', 'as_json', is_flag=True, help='Output the plan as JSON')
@click.pass_context
def plan(ctx, manifests, variables, env_file, registry_index, config_path, as_json):
    """
    Show build steps in dependency order.

    Examples:
      loom plan spin.toml
    """
    from .commands.resolve import build_plan

    app = _resolve(manifests, variables, env_file, registry_index, config_path)
    steps = build_plan(app)

    if as_json:
        click.echo(json.dumps(steps, indent=2))
        return

    click.echo()
    section(f"Build plan for {app.name}")
    for number, entry in enumerate(steps, 1):
        if entry["command"]:
            where = f" (in {entry['workdir']})" if entry["workdir"] else ""
            step(number, f"{entry['component']}: {entry['command']}{where}")
        else:
            step(number, f"{entry['component']}: {dim('no build command')}")


def main():
    """Entry point for `loom` command."""
    cli(obj={})


if __name__ == '__main__':
    main()
