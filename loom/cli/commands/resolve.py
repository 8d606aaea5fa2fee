"""Shared manifest resolution for CLI commands."""

from pathlib import Path
from typing import Dict, Iterable, List, Mapping, Optional, Sequence
import logging
import os

import click
from dotenv import dotenv_values

from ...collaborators import LocalFilesystem, StaticRegistry
from ...config import ConfigLoader, supplied_variables_from_env
from ...graph import COMPONENT, PATH_PACKAGE, REGISTRY_PACKAGE, DependencyGraph
from ...loader import ManifestLoader
from ...resolved import ResolvedApplication
from ...resolver import Resolver


logger = logging.getLogger("loom.cli")


def parse_var_options(values: Iterable[str]) -> Dict[str, str]:
    """
    Parse repeated ``--var NAME=VALUE`` options.

    Raises:
        click.BadParameter: If an entry has no '='
    """
    supplied: Dict[str, str] = {}
    for entry in values:
        name, sep, value = entry.partition("=")
        if not sep or not name:
            raise click.BadParameter(
                f"expected NAME=VALUE, got '{entry}'", param_hint="--var"
            )
        supplied[name.strip()] = value
    return supplied


def collect_variables(
    declared: Iterable[str],
    var_options: Sequence[str] = (),
    env_file: Optional[str] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> Dict[str, str]:
    """
    Merge variable values from every CLI source.

    Precedence (later wins): .env file < process environment < --var.
    Environment sources only contribute names the manifest declares.
    """
    declared = set(declared)
    environ = dict(os.environ if environ is None else environ)

    from_env: Dict[str, str] = {}
    if env_file:
        from_env.update(
            supplied_variables_from_env(
                {k: v for k, v in dotenv_values(env_file).items() if v is not None}
            )
        )
    from_env.update(supplied_variables_from_env(environ))

    supplied = {name: value for name, value in from_env.items() if name in declared}
    supplied.update(parse_var_options(var_options))
    return supplied


def resolve_manifests(
    manifests: Sequence[str],
    *,
    var_options: Sequence[str] = (),
    env_file: Optional[str] = None,
    registry_index: Optional[str] = None,
    config_path: Optional[str] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> ResolvedApplication:
    """
    Load, configure and resolve manifests given on the command line.

    Args:
        manifests: Manifest paths, lowest precedence first
        var_options: Raw ``--var`` values
        env_file: Optional .env file (variables and LOOM_* config)
        registry_index: Optional YAML/JSON registry index
        config_path: Optional YAML/JSON config file
        environ: Environment to read instead of os.environ

    Returns:
        ResolvedApplication

    Raises:
        ResolutionError: On any resolution failure
    """
    loader = ManifestLoader()
    if len(manifests) == 1:
        application = loader.load(manifests[0])
    else:
        application = loader.load_layers(list(manifests))

    config = ConfigLoader.load(
        paths=[config_path] if config_path else [],
        env_file=env_file,
        environ=dict(os.environ if environ is None else environ),
    ).to_resolver_config()

    registry = StaticRegistry.from_file(registry_index) if registry_index else None
    root = Path(manifests[0]).resolve().parent
    logger.debug("Resolving relative to %s", root)

    resolver = Resolver(registry, LocalFilesystem(str(root)), config, loader=loader)
    variables = collect_variables(application.variables, var_options, env_file, environ)
    return resolver.resolve(application, variables)


def application_graph(app: ResolvedApplication) -> DependencyGraph:
    """Rebuild a DependencyGraph from a resolved application's adjacency map."""
    components = {c.name for c in app.components}
    graph = DependencyGraph()
    for name in sorted(app.graph):
        if name in components:
            kind = COMPONENT
        elif name.startswith("path:"):
            kind = PATH_PACKAGE
        else:
            kind = REGISTRY_PACKAGE
        graph.add_node(name, kind)
    for name, edges in sorted(app.graph.items()):
        for key, target in sorted(edges.items()):
            graph.add_edge(name, key, target)
    return graph


def build_plan(app: ResolvedApplication) -> List[Dict[str, Optional[str]]]:
    """Build steps in dependency order."""
    return [
        {
            "component": component.name,
            "command": component.build.command if component.build else None,
            "workdir": component.build.workdir if component.build else None,
        }
        for component in app.components
    ]
