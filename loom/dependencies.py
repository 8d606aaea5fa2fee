"""
Dependency graph builder.

Turns each component's dependency declarations into concrete graph edges:
path dependencies point at components (or files), registry dependencies are
pinned to the highest version satisfying their range. The result is checked
for cycles, ordered, and export requests are validated against what each
target declares.
"""

from typing import Any, Dict, List, Mapping, Optional, Set
from dataclasses import dataclass
import logging

from .errors import (
    InvalidSourcePathError,
    RegistryLookupError,
    ResolutionError,
    UnknownExportError,
    UnresolvedDependencyError,
    UnsatisfiableDependencyError,
)
from .graph import COMPONENT, PATH_PACKAGE, REGISTRY_PACKAGE, DependencyGraph
from .manifest import (
    Component,
    Dependency,
    DependencyName,
    LocalSource,
    PathDependency,
    RegistryDependency,
    VersionRangeDependency,
)
from .sources import escapes_parent, normalize_path
from .versions import VersionRange


logger = logging.getLogger("loom.dependencies")


@dataclass(frozen=True)
class ResolvedDependency:
    """A dependency pinned to a concrete graph node."""

    key: str
    target: str
    kind: str
    package: Optional[str] = None
    version: Optional[str] = None
    registry: Optional[str] = None
    export: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "key": self.key,
            "target": self.target,
            "kind": self.kind,
            "package": self.package,
            "version": self.version,
            "registry": self.registry,
            "export": self.export,
        }


@dataclass
class GraphResolution:
    """Output of the builder: the graph, its order and pinned dependencies."""

    graph: DependencyGraph
    order: List[str]
    dependencies: Dict[str, Dict[str, ResolvedDependency]]

    def component_order(self) -> List[str]:
        """Build order restricted to components."""
        return [name for name in self.order if self.graph.node(name).kind == COMPONENT]

    def component_dependencies(self, component: str) -> List[str]:
        """Direct dependencies of ``component`` that are themselves components."""
        return sorted({
            dep.target
            for dep in self.dependencies.get(component, {}).values()
            if dep.kind == COMPONENT
        })


class DependencyGraphBuilder:
    """
    Builds and checks the component dependency graph.

    Args:
        registry: RegistryLookup collaborator (needed only for registry deps)
        filesystem: Optional Filesystem collaborator for path dependencies
        default_registry: Registry used by deps that name none
        allow_parent_paths: Permit path deps that escape upward with '..'
    """

    def __init__(
        self,
        registry: Any = None,
        *,
        filesystem: Any = None,
        default_registry: Optional[str] = None,
        allow_parent_paths: bool = False,
    ):
        self.registry = registry
        self.filesystem = filesystem
        self.default_registry = default_registry
        self.allow_parent_paths = allow_parent_paths

    def build(self, components: Mapping[str, Component]) -> GraphResolution:
        """
        Build the dependency graph.

        Args:
            components: Every component of the application, by name

        Returns:
            GraphResolution

        Raises:
            UnsatisfiableDependencyError: If no version satisfies a range
            DependencyCycleError: If the graph has a cycle
            UnknownExportError: If a requested export is not declared
            UnresolvedDependencyError, RegistryLookupError,
            InvalidVersionRangeError, InvalidSourcePathError
        """
        graph = DependencyGraph()
        for name in sorted(components):
            graph.add_node(name, COMPONENT)

        by_path = self._index_local_sources(components)
        pinned: Dict[str, Dict[str, ResolvedDependency]] = {}

        for name in sorted(components):
            component = components[name]
            pinned[name] = {}
            for key in sorted(component.dependencies):
                resolved = self._resolve(name, key, component.dependencies[key], by_path)
                graph.add_node(resolved.target, resolved.kind)
                graph.add_edge(name, key, resolved.target)
                pinned[name][key] = resolved
                logger.debug("%s: %s -> %s", name, key, resolved.target)

        order = graph.topological_sort()

        for name in sorted(pinned):
            for key, resolved in sorted(pinned[name].items()):
                self._check_export(name, resolved, components)

        return GraphResolution(graph=graph, order=order, dependencies=pinned)

    def _index_local_sources(self, components: Mapping[str, Component]) -> Dict[str, str]:
        index: Dict[str, str] = {}
        for name in sorted(components):
            source = components[name].source
            if isinstance(source, LocalSource):
                index.setdefault(normalize_path(source.path), name)
        return index

    def _resolve(
        self,
        component: str,
        key: str,
        dependency: Dependency,
        by_path: Mapping[str, str],
    ) -> ResolvedDependency:
        if isinstance(dependency, PathDependency):
            return self._resolve_path(component, key, dependency, by_path)
        if isinstance(dependency, RegistryDependency):
            package = dependency.package or DependencyName.parse(key).package
            registry = dependency.registry or self.default_registry
            return self._resolve_registry(
                component, key, package, dependency.version, registry, dependency.export
            )
        if isinstance(dependency, VersionRangeDependency):
            package = DependencyName.parse(key).package
            return self._resolve_registry(
                component, key, package, dependency.version, self.default_registry, None
            )
        raise TypeError(f"Unknown dependency type: {type(dependency).__name__}")

    def _resolve_path(
        self,
        component: str,
        key: str,
        dependency: PathDependency,
        by_path: Mapping[str, str],
    ) -> ResolvedDependency:
        path = normalize_path(dependency.path)
        if not path:
            raise InvalidSourcePathError(component, dependency.path, "dependency path is empty")
        if escapes_parent(path) and not self.allow_parent_paths:
            raise InvalidSourcePathError(
                component, dependency.path, "dependency path escapes the application directory"
            )

        if path in by_path:
            return ResolvedDependency(
                key=key,
                target=by_path[path],
                kind=COMPONENT,
                export=dependency.export,
            )

        if self.filesystem is not None and not self.filesystem.exists(path):
            raise UnresolvedDependencyError(component, key, path)

        return ResolvedDependency(
            key=key,
            target=f"path:{path}",
            kind=PATH_PACKAGE,
            export=dependency.export,
        )

    def _resolve_registry(
        self,
        component: str,
        key: str,
        package: str,
        version_range: str,
        registry: Optional[str],
        export: Optional[str],
    ) -> ResolvedDependency:
        requirement = VersionRange.parse(version_range)

        if self.registry is None:
            raise RegistryLookupError(
                package, "no registry lookup is configured", registry=registry
            )

        try:
            available = list(self.registry.resolve(package, version_range, registry))
        except ResolutionError:
            raise
        except Exception as e:
            raise RegistryLookupError(package, str(e), registry=registry) from e

        selected = requirement.select_highest(available)
        if selected is None:
            raise UnsatisfiableDependencyError(
                component, key, version_range, available=sorted(available)
            )

        logger.debug(
            "%s: %s %s selected %s from %d candidate(s)",
            component, package, version_range, selected, len(available),
        )

        target = f"{package}@{selected}"
        if registry:
            target = f"{registry}/{target}"

        return ResolvedDependency(
            key=key,
            target=target,
            kind=REGISTRY_PACKAGE,
            package=package,
            version=selected,
            registry=registry,
            export=export,
        )

    def _check_export(
        self,
        component: str,
        resolved: ResolvedDependency,
        components: Mapping[str, Component],
    ) -> None:
        if resolved.export is None:
            return

        declared: Optional[Set[str]] = None
        if resolved.kind == COMPONENT:
            declared = set(components[resolved.target].exports)
        elif resolved.kind == REGISTRY_PACKAGE and self.registry is not None:
            try:
                declared = self.registry.exports(
                    resolved.package, resolved.version, resolved.registry
                )
            except ResolutionError:
                raise
            except Exception as e:
                raise RegistryLookupError(
                    resolved.package, str(e), registry=resolved.registry
                ) from e

        # Nothing declared means everything is exported.
        if not declared or resolved.export in declared:
            return

        raise UnknownExportError(
            component,
            resolved.export,
            key=resolved.key,
            target=resolved.target,
            available=sorted(declared),
        )
