"""
Resolved application - the immutable output of a resolution pass - and the
emitter that assembles it.
"""

from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple
from dataclasses import dataclass, field, replace
from types import MappingProxyType
import json

from .dependencies import GraphResolution, ResolvedDependency
from .fingerprint import FingerprintGenerator
from .inheritance import EffectiveConfig
from .manifest import Application, BuildConfig, Component, FileMount, ToolConfig
from .sources import ContentReference
from .variables import BoundEnvironment


def _frozen(mapping: Optional[Mapping]) -> Mapping:
    return MappingProxyType(dict(mapping or {}))


def freeze(value: Any) -> Any:
    """Deep read-only copy: mappings become proxies, lists become tuples."""
    if isinstance(value, Mapping):
        return MappingProxyType({key: freeze(item) for key, item in value.items()})
    if isinstance(value, (list, tuple)):
        return tuple(freeze(item) for item in value)
    return value


@dataclass(frozen=True)
class ResolvedComponent:
    """A component after source verification and inherited-config merge."""

    name: str
    source: ContentReference
    description: str = ""
    environment: Mapping[str, str] = field(default_factory=dict)
    files: Tuple[FileMount, ...] = ()
    exclude_files: Tuple[str, ...] = ()
    allowed_outbound_hosts: Tuple[str, ...] = ()
    key_value_stores: Tuple[str, ...] = ()
    sqlite_databases: Tuple[str, ...] = ()
    ai_models: Tuple[str, ...] = ()
    dependencies_inherit_configuration: bool = False
    dependencies: Mapping[str, ResolvedDependency] = field(default_factory=dict)
    build: Optional[BuildConfig] = None
    tools: Mapping[str, ToolConfig] = field(default_factory=dict)
    exports: Tuple[str, ...] = ()
    inherited_from: Tuple[str, ...] = ()
    build_index: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "source": self.source.to_dict(),
            "description": self.description,
            "environment": dict(self.environment),
            "files": [
                {"source": f.source, "destination": f.destination} for f in self.files
            ],
            "exclude_files": list(self.exclude_files),
            "allowed_outbound_hosts": list(self.allowed_outbound_hosts),
            "key_value_stores": list(self.key_value_stores),
            "sqlite_databases": list(self.sqlite_databases),
            "ai_models": list(self.ai_models),
            "dependencies_inherit_configuration": self.dependencies_inherit_configuration,
            "dependencies": {
                key: dep.to_dict() for key, dep in sorted(self.dependencies.items())
            },
            "build": None if self.build is None else {
                "command": self.build.command,
                "workdir": self.build.workdir,
                "watch": list(self.build.watch),
            },
            "tools": {name: tool.command for name, tool in sorted(self.tools.items())},
            "exports": list(self.exports),
            "inherited_from": list(self.inherited_from),
            "build_index": self.build_index,
        }


@dataclass(frozen=True)
class ResolvedTrigger:
    """A validated trigger bound to a concrete component."""

    kind: str
    component: str
    options: Mapping[str, Any] = field(default_factory=dict)
    inline: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind,
            "component": self.component,
            "options": _plain(self.options),
            "inline": self.inline,
        }


@dataclass(frozen=True)
class ResolvedApplication:
    """
    Immutable snapshot of a fully resolved application.

    Components are in build order (dependencies first). Variable values are
    complete internally; every serialization redacts secrets unless asked
    not to.
    """

    name: str
    version: str
    description: str
    authors: Tuple[str, ...]
    variables: BoundEnvironment
    triggers: Tuple[ResolvedTrigger, ...]
    components: Tuple[ResolvedComponent, ...]
    graph: Mapping[str, Mapping[str, str]]
    build_order: Tuple[str, ...]
    trigger_settings: Mapping[str, Any] = field(default_factory=dict)
    tools: Mapping[str, Any] = field(default_factory=dict)
    warnings: Tuple[str, ...] = ()
    fingerprint: str = ""

    def component(self, name: str) -> ResolvedComponent:
        """Look up a resolved component by name."""
        for component in self.components:
            if component.name == name:
                return component
        raise KeyError(name)

    def to_dict(self, *, redact: bool = True) -> Dict[str, Any]:
        """
        Serialize to plain data.

        Args:
            redact: Replace secret variable values (default True)
        """
        return {
            "name": self.name,
            "version": self.version,
            "description": self.description,
            "authors": list(self.authors),
            "variables": self.variables.to_dict(redact=redact),
            "secret_variables": sorted(
                name for name in self.variables if self.variables.is_secret(name)
            ),
            "triggers": [t.to_dict() for t in self.triggers],
            "components": [c.to_dict() for c in self.components],
            "graph": {k: dict(v) for k, v in self.graph.items()},
            "build_order": list(self.build_order),
            "trigger_settings": _plain(self.trigger_settings),
            "tools": _plain(self.tools),
            "warnings": list(self.warnings),
            "fingerprint": self.fingerprint,
        }

    def to_json(self, *, redact: bool = True, indent: Optional[int] = 2) -> str:
        """Deterministic JSON (sorted keys)."""
        return json.dumps(self.to_dict(redact=redact), indent=indent, sort_keys=True)

    def inspect(self) -> Dict[str, Any]:
        """
        Summary for diagnostics.

        Returns:
            Counts, build order and per-component dependency pins
        """
        return {
            "name": self.name,
            "version": self.version,
            "fingerprint": self.fingerprint,
            "variable_count": len(self.variables),
            "trigger_count": len(self.triggers),
            "component_count": len(self.components),
            "components": [
                {
                    "name": c.name,
                    "source": c.source.kind,
                    "build_index": c.build_index,
                    "dependencies": {k: d.target for k, d in sorted(c.dependencies.items())},
                    "inherited_from": list(c.inherited_from),
                }
                for c in self.components
            ],
            "build_order": list(self.build_order),
            "warning_count": len(self.warnings),
        }

    def __repr__(self) -> str:
        return (
            f"ResolvedApplication({self.name!r}, {len(self.components)} components, "
            f"fingerprint={self.fingerprint[:12]})"
        )


def _plain(value: Any) -> Any:
    if isinstance(value, Mapping):
        return {k: _plain(v) for k, v in sorted(value.items())}
    if isinstance(value, (list, tuple)):
        return [_plain(v) for v in value]
    return value


class ApplicationEmitter:
    """Assembles the final ResolvedApplication."""

    def __init__(self, fingerprints: Optional[FingerprintGenerator] = None):
        self.fingerprints = fingerprints or FingerprintGenerator()

    def emit(
        self,
        application: Application,
        *,
        variables: BoundEnvironment,
        triggers: Sequence[ResolvedTrigger],
        components: Mapping[str, Component],
        references: Mapping[str, ContentReference],
        resolution: GraphResolution,
        effective: Mapping[str, EffectiveConfig],
        warnings: Sequence[str] = (),
    ) -> ResolvedApplication:
        """
        Build the immutable application.

        Args:
            application: Parsed manifest
            variables: Bound variable environment
            triggers: Validated triggers
            components: Components by name (inline ones included)
            references: Verified source per component
            resolution: Dependency graph builder output
            effective: Effective configuration per component
            warnings: Non-fatal validator findings

        Returns:
            ResolvedApplication with its fingerprint set
        """
        order = resolution.component_order()
        resolved: List[ResolvedComponent] = []

        for index, name in enumerate(order):
            component = components[name]
            config = effective[name]
            resolved.append(
                ResolvedComponent(
                    name=name,
                    source=references[name],
                    description=component.description,
                    environment=_frozen(config.environment),
                    files=tuple(component.files),
                    exclude_files=tuple(component.exclude_files),
                    allowed_outbound_hosts=config.allowed_outbound_hosts,
                    key_value_stores=config.key_value_stores,
                    sqlite_databases=config.sqlite_databases,
                    ai_models=config.ai_models,
                    dependencies_inherit_configuration=component.dependencies_inherit_configuration,
                    dependencies=_frozen(sorted(resolution.dependencies.get(name, {}).items())),
                    build=None if component.build is None else replace(
                        component.build, watch=tuple(component.build.watch)
                    ),
                    tools=_frozen(sorted(component.tools.items())),
                    exports=tuple(component.exports),
                    inherited_from=config.inherited_from,
                    build_index=index,
                )
            )

        graph = _frozen(
            (name, _frozen(edges)) for name, edges in resolution.graph.to_dict().items()
        )

        app = ResolvedApplication(
            name=application.name,
            version=application.version,
            description=application.description,
            authors=tuple(application.authors),
            variables=variables,
            triggers=tuple(triggers),
            components=tuple(resolved),
            graph=graph,
            build_order=tuple(order),
            trigger_settings=freeze(application.trigger_settings),
            tools=freeze(application.tools),
            warnings=tuple(warnings),
        )

        fingerprint = self.fingerprints.generate(app.to_dict(redact=True))
        return replace(app, fingerprint=fingerprint)
