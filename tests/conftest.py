"""
Shared test fixtures and helpers for the Loom test suite.
"""

import pytest
from typing import Any, Dict, Iterable, List, Optional, Sequence

from loom.collaborators import StaticRegistry
from loom.manifest import (
    Application,
    Component,
    LocalSource,
    Trigger,
    TriggerBinding,
    Variable,
)
from loom.resolver import Resolver


DIGEST = "sha256:" + "abcd1234" * 8


# ============================================================================
# Collaborator doubles
# ============================================================================


class MemoryFilesystem:
    """Filesystem collaborator backed by a set of paths."""

    def __init__(self, paths: Iterable[str] = ()):
        self.paths = set(paths)

    def exists(self, path: str) -> bool:
        return path in self.paths

    def match_globs(self, patterns: Sequence[str], excludes: Sequence[str]) -> List[str]:
        return sorted(self.paths)


class FakeFetcher:
    """NetworkFetch collaborator serving canned bytes."""

    def __init__(self, responses: Dict[str, bytes]):
        self.responses = responses
        self.calls: List[str] = []

    def fetch(self, url: str) -> bytes:
        self.calls.append(url)
        return self.responses[url]


# ============================================================================
# Model builders
# ============================================================================


def make_component(name: str, **kwargs: Any) -> Component:
    """Component with a local source named after it unless one is given."""
    kwargs.setdefault("source", LocalSource(f"{name}.wasm"))
    return Component(name=name, **kwargs)


def make_app(
    components: Iterable[Component] = (),
    *,
    triggers: Optional[List[Trigger]] = None,
    variables: Optional[Dict[str, Variable]] = None,
    name: str = "test-app",
) -> Application:
    """Application wrapping the given components, with an http trigger per component by default."""
    components = list(components)
    if triggers is None:
        triggers = [
            Trigger(kind="http", binding=TriggerBinding(component=c.name), options={"route": f"/{c.name}"})
            for c in components
        ]
    return Application(
        name=name,
        version="1.0.0",
        variables=variables or {},
        triggers=triggers,
        components={c.name: c for c in components},
    )


# ============================================================================
# Fixtures
# ============================================================================


@pytest.fixture
def registry() -> StaticRegistry:
    """Registry with a handful of packages across the default and a named registry."""
    return (
        StaticRegistry()
        .add("fizz:buzz", ["0.1.0", "0.2.0", "1.0.0"])
        .add("abc:xyz", ["0.1.0", "0.1.1", "0.2.0"])
        .add("wasi:http", ["0.2.0", "0.2.1"], exports={"0.2.1": ["incoming-handler", "outgoing-handler"]})
        .add("a:b", ["1.2.3", "1.3.0", "2.0.0"], registry="my-registry.com", exports={"1.3.0": ["c", "foo"]})
    )


@pytest.fixture
def resolver(registry) -> Resolver:
    """Resolver without a filesystem (existence checks skipped)."""
    return Resolver(registry)


@pytest.fixture
def maximal_manifest() -> Dict[str, Any]:
    """A manifest exercising every supported field."""
    return {
        "spin_manifest_version": 2,
        "application": {
            "name": "maximal",
            "version": "9999.9.9",
            "description": "All the features, all the time",
            "authors": ["alice@example.com", "bob@example.com"],
            "trigger": {"fake": {"global_option": True}},
            "tool": {"lint": {"lint_level": "savage"}},
        },
        "variables": {
            "var_one": {"default": "Default"},
            "var_two": {"required": True, "secret": True},
        },
        "trigger": {
            "fake": [
                {"component": "minimal-component"},
                {"component": {"source": "inline.wasm"}, "option": True},
            ],
        },
        "component": {
            "minimal-component": {"source": "max-a.wasm"},
            "maximal-component": {
                "source": {"url": "http://example.test/max-b.wasm", "digest": DIGEST},
                "description": "My fine component",
                "environment": {"VAR": "val"},
                "files": ["pattern/*", {"source": "placement", "destination": "/"}],
                "exclude_files": ["**/secret"],
                "allowed_outbound_hosts": ["https://example.com:443"],
                "key_value_stores": ["default"],
                "sqlite_databases": ["default"],
                "ai_models": ["llama2-chat"],
                "dependencies_inherit_configuration": True,
                "build": {
                    "command": "cargo build",
                    "workdir": "my-component",
                    "watch": ["src/**/*.rs"],
                },
                "tool": {"clean": {"command": "cargo clean"}},
                "dependencies": {
                    "a:b/c": {
                        "registry": "my-registry.com",
                        "version": "^1.2.3",
                        "package": "a:b",
                        "export": "foo",
                    },
                    "foo:bar/baz@0.1.0": {"path": "path/to/component.wasm"},
                    "fib:fub/fob": {"path": "path/to/component.wasm", "export": "my-export"},
                    "fizz:buzz": ">=0.1.0",
                    "abc:xyz@0.1.0": {"version": "=0.1.0"},
                },
            },
        },
    }


MAXIMAL_TOML = '''
spin_manifest_version = 2

[application]
name = "maximal"
version = "9999.9.9"
description = "All the features, all the time"
authors = ["alice@example.com", "bob@example.com"]

[application.trigger.fake]
global_option = true

[application.tool.lint]
lint_level = "savage"

[variables]
var_one = { default = "Default" }
var_two = { required = true, secret = true }

[[trigger.fake]]
component = "minimal-component"

[[trigger.fake]]
component = { source = "inline.wasm" }
option = true

[component.minimal-component]
source = "max-a.wasm"

[component.maximal-component]
source = { url = "http://example.test/max-b.wasm", digest = "sha256:abcd1234abcd1234abcd1234abcd1234abcd1234abcd1234abcd1234abcd1234" }
description = "My fine component"
environment = { VAR = "val" }
files = ["pattern/*", { source = "placement", destination = "/" }]
exclude_files = ["**/secret"]
allowed_outbound_hosts = ["https://example.com:443"]
key_value_stores = ["default"]
sqlite_databases = ["default"]
ai_models = ["llama2-chat"]
dependencies_inherit_configuration = true

[component.maximal-component.build]
command = "cargo build"
workdir = "my-component"
watch = ["src/**/*.rs"]

[component.maximal-component.tool.clean]
command = "cargo clean"

[component.maximal-component.dependencies]
"a:b/c" = { registry = "my-registry.com", version = "^1.2.3", package = "a:b", export = "foo"}
"foo:bar/baz@0.1.0" = { path = "path/to/component.wasm" }
"fib:fub/fob" = { path = "path/to/component.wasm", export = "my-export" }
"fizz:buzz" = ">=0.1.0"
"abc:xyz@0.1.0" = { version = "=0.1.0" }
'''


@pytest.fixture
def maximal_toml(tmp_path):
    """The maximal manifest written to disk, with the files its local sources name."""
    path = tmp_path / "spin.toml"
    path.write_text(MAXIMAL_TOML)
    (tmp_path / "max-a.wasm").write_bytes(b"\0asm")
    (tmp_path / "inline.wasm").write_bytes(b"\0asm")
    (tmp_path / "path" / "to").mkdir(parents=True)
    (tmp_path / "path" / "to" / "component.wasm").write_bytes(b"\0asm")
    return path
