"""
Dependency graph builder (loom/dependencies.py)

Tests path and registry resolution, version selection, cycles and exports.
"""

import pytest

from loom.collaborators import StaticRegistry
from loom.dependencies import DependencyGraphBuilder
from loom.errors import (
    DependencyCycleError,
    InvalidSourcePathError,
    InvalidVersionRangeError,
    RegistryLookupError,
    UnknownExportError,
    UnresolvedDependencyError,
    UnsatisfiableDependencyError,
)
from loom.graph import COMPONENT, PATH_PACKAGE, REGISTRY_PACKAGE
from loom.manifest import (
    PathDependency,
    RegistryDependency,
    VersionRangeDependency,
)

from tests.conftest import MemoryFilesystem, make_component


def components(*items):
    return {c.name: c for c in items}


class ExplodingRegistry:
    """Registry collaborator whose lookups always fail."""

    def resolve(self, package, version_range, registry=None):
        raise ConnectionError("registry unreachable")

    def exports(self, package, version, registry=None):
        return None


class BrokenExportsRegistry(StaticRegistry):
    """Registry whose version listing works but export lookups fail."""

    def exports(self, package, version, registry=None):
        raise TimeoutError("exports endpoint timed out")


# ============================================================================
# Path dependencies
# ============================================================================

class TestPathDependencies:

    def test_path_to_component(self):
        comps = components(
            make_component("api", dependencies={"acme:auth": PathDependency("./auth.wasm")}),
            make_component("auth"),
        )
        result = DependencyGraphBuilder().build(comps)

        dep = result.dependencies["api"]["acme:auth"]
        assert dep.kind == COMPONENT
        assert dep.target == "auth"
        assert result.component_order() == ["auth", "api"]
        assert result.component_dependencies("api") == ["auth"]

    def test_path_to_file(self):
        comps = components(
            make_component("api", dependencies={"acme:lib": PathDependency("lib/lib.wasm")}),
        )
        result = DependencyGraphBuilder().build(comps)

        dep = result.dependencies["api"]["acme:lib"]
        assert dep.kind == PATH_PACKAGE
        assert dep.target == "path:lib/lib.wasm"
        assert result.component_dependencies("api") == []
        assert result.order == ["path:lib/lib.wasm", "api"]

    def test_shared_path_target_is_one_node(self):
        comps = components(
            make_component("api", dependencies={
                "acme:one": PathDependency("lib.wasm"),
                "acme:two": PathDependency("./lib.wasm"),
            }),
        )
        result = DependencyGraphBuilder().build(comps)
        assert len(result.graph) == 2

    def test_missing_path_with_filesystem(self):
        comps = components(
            make_component("api", dependencies={"acme:lib": PathDependency("lib.wasm")}),
        )
        builder = DependencyGraphBuilder(filesystem=MemoryFilesystem({"api.wasm"}))
        with pytest.raises(UnresolvedDependencyError) as exc_info:
            builder.build(comps)
        assert exc_info.value.target == "lib.wasm"

    def test_existing_path_with_filesystem(self):
        comps = components(
            make_component("api", dependencies={"acme:lib": PathDependency("lib.wasm")}),
        )
        builder = DependencyGraphBuilder(filesystem=MemoryFilesystem({"lib.wasm"}))
        assert builder.build(comps).dependencies["api"]["acme:lib"].target == "path:lib.wasm"

    def test_parent_escape_rejected(self):
        comps = components(
            make_component("api", dependencies={"acme:lib": PathDependency("../lib.wasm")}),
        )
        with pytest.raises(InvalidSourcePathError):
            DependencyGraphBuilder().build(comps)

    def test_parent_escape_allowed(self):
        comps = components(
            make_component("api", dependencies={"acme:lib": PathDependency("../lib.wasm")}),
        )
        result = DependencyGraphBuilder(allow_parent_paths=True).build(comps)
        assert result.dependencies["api"]["acme:lib"].target == "path:../lib.wasm"


# ============================================================================
# Registry dependencies
# ============================================================================

class TestRegistryDependencies:

    def test_highest_satisfying_version(self, registry):
        comps = components(
            make_component("api", dependencies={"fizz:buzz": VersionRangeDependency(">=0.1.0")}),
        )
        dep = DependencyGraphBuilder(registry).build(comps).dependencies["api"]["fizz:buzz"]

        assert dep.kind == REGISTRY_PACKAGE
        assert dep.version == "1.0.0"
        assert dep.target == "fizz:buzz@1.0.0"

    def test_exact_pin(self, registry):
        comps = components(
            make_component("api", dependencies={"abc:xyz@0.1.0": RegistryDependency(version="=0.1.0")}),
        )
        dep = DependencyGraphBuilder(registry).build(comps).dependencies["api"]["abc:xyz@0.1.0"]
        assert dep.package == "abc:xyz"
        assert dep.target == "abc:xyz@0.1.0"

    def test_named_registry(self, registry):
        comps = components(
            make_component("api", dependencies={
                "a:b/c": RegistryDependency(version="^1.2.3", registry="my-registry.com"),
            }),
        )
        dep = DependencyGraphBuilder(registry).build(comps).dependencies["api"]["a:b/c"]
        assert dep.version == "1.3.0"
        assert dep.registry == "my-registry.com"
        assert dep.target == "my-registry.com/a:b@1.3.0"

    def test_default_registry(self):
        registry = StaticRegistry().add("fizz:buzz", ["2.0.0"], registry="corp")
        comps = components(
            make_component("api", dependencies={"fizz:buzz": VersionRangeDependency("*")}),
        )
        dep = DependencyGraphBuilder(registry, default_registry="corp").build(comps).dependencies["api"]["fizz:buzz"]
        assert dep.target == "corp/fizz:buzz@2.0.0"

    def test_shared_version_is_one_node(self, registry):
        comps = components(
            make_component("api", dependencies={"fizz:buzz": VersionRangeDependency("^1")}),
            make_component("web", dependencies={"fizz:buzz": VersionRangeDependency(">=0.2")}),
        )
        result = DependencyGraphBuilder(registry).build(comps)
        assert result.graph.to_dict()["api"]["fizz:buzz"] == "fizz:buzz@1.0.0"
        assert result.graph.to_dict()["web"]["fizz:buzz"] == "fizz:buzz@1.0.0"
        assert len(result.graph) == 3

    def test_unsatisfiable(self, registry):
        comps = components(
            make_component("api", dependencies={"fizz:buzz": VersionRangeDependency(">=5.0.0")}),
        )
        with pytest.raises(UnsatisfiableDependencyError) as exc_info:
            DependencyGraphBuilder(registry).build(comps)
        assert exc_info.value.component == "api"
        assert exc_info.value.available == ["0.1.0", "0.2.0", "1.0.0"]

    def test_unknown_package_is_unsatisfiable(self, registry):
        comps = components(
            make_component("api", dependencies={"no:such": VersionRangeDependency("*")}),
        )
        with pytest.raises(UnsatisfiableDependencyError):
            DependencyGraphBuilder(registry).build(comps)

    def test_no_registry_configured(self):
        comps = components(
            make_component("api", dependencies={"fizz:buzz": VersionRangeDependency("*")}),
        )
        with pytest.raises(RegistryLookupError, match="no registry lookup"):
            DependencyGraphBuilder().build(comps)

    def test_registry_failure_wrapped(self):
        comps = components(
            make_component("api", dependencies={"fizz:buzz": VersionRangeDependency("*")}),
        )
        with pytest.raises(RegistryLookupError, match="registry unreachable"):
            DependencyGraphBuilder(ExplodingRegistry()).build(comps)

    def test_export_lookup_failure_wrapped(self):
        registry = BrokenExportsRegistry().add("wasi:http", ["0.2.1"])
        comps = components(
            make_component("api", dependencies={
                "wasi:http": RegistryDependency(version="^0.2", export="incoming-handler"),
            }),
        )
        with pytest.raises(RegistryLookupError, match="exports endpoint timed out") as exc_info:
            DependencyGraphBuilder(registry).build(comps)
        assert exc_info.value.package == "wasi:http"

    def test_invalid_range(self, registry):
        comps = components(
            make_component("api", dependencies={"fizz:buzz": VersionRangeDependency("latest")}),
        )
        with pytest.raises(InvalidVersionRangeError):
            DependencyGraphBuilder(registry).build(comps)


# ============================================================================
# Cycles
# ============================================================================

class TestDependencyCycles:

    def test_two_component_cycle(self):
        comps = components(
            make_component("x", dependencies={"acme:y": PathDependency("y.wasm")}),
            make_component("y", dependencies={"acme:x": PathDependency("x.wasm")}),
        )
        with pytest.raises(DependencyCycleError) as exc_info:
            DependencyGraphBuilder().build(comps)
        assert set(exc_info.value.cycle) == {"x", "y"}

    def test_self_dependency(self):
        comps = components(
            make_component("x", dependencies={"acme:x": PathDependency("x.wasm")}),
        )
        with pytest.raises(DependencyCycleError):
            DependencyGraphBuilder().build(comps)


# ============================================================================
# Exports
# ============================================================================

class TestExports:

    def test_component_export_declared(self):
        comps = components(
            make_component("api", dependencies={"acme:auth": PathDependency("auth.wasm", export="check")}),
            make_component("auth", exports=["check", "login"]),
        )
        result = DependencyGraphBuilder().build(comps)
        assert result.dependencies["api"]["acme:auth"].export == "check"

    def test_component_export_unknown(self):
        comps = components(
            make_component("api", dependencies={"acme:auth": PathDependency("auth.wasm", export="nope")}),
            make_component("auth", exports=["check", "login"]),
        )
        with pytest.raises(UnknownExportError) as exc_info:
            DependencyGraphBuilder().build(comps)
        assert exc_info.value.available == ["check", "login"]
        assert exc_info.value.target == "auth"

    def test_component_without_declared_exports(self):
        comps = components(
            make_component("api", dependencies={"acme:auth": PathDependency("auth.wasm", export="any")}),
            make_component("auth"),
        )
        DependencyGraphBuilder().build(comps)

    def test_registry_export_declared(self, registry):
        comps = components(
            make_component("api", dependencies={
                "a:b/c": RegistryDependency(version="^1.2.3", registry="my-registry.com", export="foo"),
            }),
        )
        DependencyGraphBuilder(registry).build(comps)

    def test_registry_export_unknown(self, registry):
        comps = components(
            make_component("api", dependencies={
                "wasi:http": RegistryDependency(version="^0.2", export="teapot"),
            }),
        )
        with pytest.raises(UnknownExportError) as exc_info:
            DependencyGraphBuilder(registry).build(comps)
        assert exc_info.value.available == ["incoming-handler", "outgoing-handler"]
