"""
Manifest model - typed representation of a parsed application manifest.

Pure data: construction checks the shape of each declaration and nothing
more. Resolution behavior lives in the binder, source resolver, graph
builder, propagator and validator.
"""

from typing import Any, Dict, List, Optional, Union
from dataclasses import dataclass, field
import re

from .errors import ManifestValidationError


VARIABLE_NAME_RE = re.compile(r"^[a-z][a-z0-9_]*$")
COMPONENT_NAME_RE = re.compile(r"^[a-z][a-z0-9]*(-[a-z0-9]+)*$")

# ns:pkg[/interface][@version]
DEPENDENCY_NAME_RE = re.compile(
    r"^(?P<package>[a-z][a-z0-9-]*(?::[a-z][a-z0-9-]*)+)"
    r"(?:/(?P<interface>[a-z][a-z0-9-]*))?"
    r"(?:@(?P<version>[0-9A-Za-z.+\-]+))?$"
)


# ============================================================================
# Variables
# ============================================================================


@dataclass(frozen=True)
class Variable:
    """
    A declared application variable.

    Required variables have no default: they must be supplied externally.
    Secret variables are redacted wherever a resolved application is shown.
    """

    default: Optional[str] = None
    required: bool = False
    secret: bool = False

    def __post_init__(self):
        if self.required and self.default is not None:
            raise ManifestValidationError(
                "variables",
                ["a variable cannot be both required and have a default"],
            )
        if not self.required and self.default is None:
            raise ManifestValidationError(
                "variables",
                ["a variable must either be required or have a default"],
            )


# ============================================================================
# Component sources
# ============================================================================


@dataclass(frozen=True)
class LocalSource:
    """Component bytes at a path relative to the manifest."""

    path: str


@dataclass(frozen=True)
class InlineSource:
    """Component bytes embedded directly in the manifest (or by a trigger)."""

    content: bytes
    origin: str = "<inline>"


@dataclass(frozen=True)
class RemoteSource:
    """Component bytes fetched from a URL and checked against a digest."""

    url: str
    digest: str


ComponentSource = Union[LocalSource, InlineSource, RemoteSource]


# ============================================================================
# Dependencies
# ============================================================================


@dataclass(frozen=True)
class RegistryDependency:
    """A package pulled from a registry, constrained by a version range."""

    version: str
    registry: Optional[str] = None
    package: Optional[str] = None
    export: Optional[str] = None


@dataclass(frozen=True)
class PathDependency:
    """A component file on disk, usually another component of this application."""

    path: str
    export: Optional[str] = None


@dataclass(frozen=True)
class VersionRangeDependency:
    """Shorthand: resolve from the default registry using this range."""

    version: str

    @property
    def export(self) -> Optional[str]:
        return None


Dependency = Union[RegistryDependency, PathDependency, VersionRangeDependency]


@dataclass(frozen=True)
class DependencyName:
    """
    Parsed dependency key.

    Keys name a package and optionally one of its interfaces and a version,
    e.g. ``fizz:buzz``, ``a:b/c`` or ``foo:bar/baz@0.1.0``.
    """

    package: str
    interface: Optional[str] = None
    version: Optional[str] = None

    @classmethod
    def parse(cls, key: str) -> "DependencyName":
        match = DEPENDENCY_NAME_RE.match(key)
        if match is None:
            raise ManifestValidationError(
                "dependencies",
                [f"invalid dependency name '{key}' (expected 'ns:pkg[/interface][@version]')"],
            )
        return cls(
            package=match.group("package"),
            interface=match.group("interface"),
            version=match.group("version"),
        )

    def __str__(self) -> str:
        text = self.package
        if self.interface:
            text += f"/{self.interface}"
        if self.version:
            text += f"@{self.version}"
        return text


# ============================================================================
# Components
# ============================================================================


@dataclass(frozen=True)
class FileMount:
    """
    A file inclusion rule.

    With no destination, ``source`` is a glob pattern relative to the
    manifest. With a destination, ``source`` is a directory placed at
    ``destination`` inside the component's filesystem.
    """

    source: str
    destination: Optional[str] = None

    @property
    def is_pattern(self) -> bool:
        return self.destination is None


@dataclass(frozen=True)
class BuildConfig:
    """How build tooling produces a component's source."""

    command: str
    workdir: Optional[str] = None
    watch: List[str] = field(default_factory=list)


@dataclass(frozen=True)
class ToolConfig:
    """A named maintenance command."""

    command: str


@dataclass
class Component:
    """A deployable unit of code with a source, configuration and dependencies."""

    name: str
    source: ComponentSource
    description: str = ""
    environment: Dict[str, str] = field(default_factory=dict)
    files: List[FileMount] = field(default_factory=list)
    exclude_files: List[str] = field(default_factory=list)
    allowed_outbound_hosts: List[str] = field(default_factory=list)
    key_value_stores: List[str] = field(default_factory=list)
    sqlite_databases: List[str] = field(default_factory=list)
    ai_models: List[str] = field(default_factory=list)
    dependencies_inherit_configuration: bool = False
    dependencies: Dict[str, Dependency] = field(default_factory=dict)
    build: Optional[BuildConfig] = None
    tools: Dict[str, ToolConfig] = field(default_factory=dict)
    exports: List[str] = field(default_factory=list)

    def __post_init__(self):
        errors: List[str] = []

        if not COMPONENT_NAME_RE.match(self.name or ""):
            errors.append(
                f"invalid component name '{self.name}' "
                "(expected lowercase words separated by '-')"
            )

        if not isinstance(self.source, (LocalSource, InlineSource, RemoteSource)):
            errors.append("source must be a local path, inline bytes or a remote url+digest")

        for key in self.dependencies:
            if not DEPENDENCY_NAME_RE.match(key):
                errors.append(
                    f"invalid dependency name '{key}' (expected 'ns:pkg[/interface][@version]')"
                )

        if errors:
            raise ManifestValidationError(f"component.{self.name}", errors)

    def include_patterns(self) -> List[str]:
        """Inclusion patterns, with placements expressed as directory globs."""
        patterns = []
        for mount in self.files:
            if mount.is_pattern:
                patterns.append(mount.source)
            else:
                patterns.append(mount.source.rstrip("/") + "/**")
        return patterns


# ============================================================================
# Triggers
# ============================================================================


@dataclass(frozen=True)
class TriggerBinding:
    """What a trigger invokes: a declared component or an inline source."""

    component: Optional[str] = None
    inline: Optional[ComponentSource] = None

    def __post_init__(self):
        if (self.component is None) == (self.inline is None):
            raise ManifestValidationError(
                "triggers",
                ["a trigger binding names exactly one component or one inline source"],
            )

    @property
    def is_inline(self) -> bool:
        return self.inline is not None


@dataclass
class Trigger:
    """An event source binding."""

    kind: str
    binding: TriggerBinding
    options: Dict[str, Any] = field(default_factory=dict)


# ============================================================================
# Application
# ============================================================================


@dataclass
class Application:
    """
    A parsed application manifest.

    Mappings are keyed by declared name, so duplicates inside one document
    cannot be represented; duplicates across layered documents are caught by
    the loader.
    """

    name: str
    version: str = ""
    description: str = ""
    authors: List[str] = field(default_factory=list)
    variables: Dict[str, Variable] = field(default_factory=dict)
    triggers: List[Trigger] = field(default_factory=list)
    components: Dict[str, Component] = field(default_factory=dict)
    trigger_settings: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    tools: Dict[str, Dict[str, Any]] = field(default_factory=dict)

    def __post_init__(self):
        errors: List[str] = []

        if not self.name:
            errors.append("Missing required field: application.name")

        for name in self.variables:
            if not VARIABLE_NAME_RE.match(name):
                errors.append(
                    f"invalid variable name '{name}' "
                    "(expected lowercase letters, digits and underscores)"
                )

        for key, component in self.components.items():
            if component.name != key:
                errors.append(
                    f"component declared as '{key}' is named '{component.name}'"
                )

        if errors:
            raise ManifestValidationError(self.name or "unknown", errors)
