"""
Loom - Manifest resolution and dependency graph engine for WebAssembly apps

Turns a declarative application manifest into a fully resolved,
validated application:
- Binds declared variables to supplied values (secrets stay redacted)
- Resolves component sources to verified content references
- Pins component and registry dependencies, detects cycles, orders builds
- Propagates inherited configuration down the dependency graph
- Validates triggers, outbound hosts and file patterns
- Emits an immutable, fingerprinted ResolvedApplication
"""

__version__ = "1.0.0"

from .resolver import Resolver

from .errors import (
    ResolutionError,
    ErrorSpan,
    ManifestValidationError,
    DuplicateNameError,
    MissingRequiredVariableError,
    UnknownVariableError,
    InvalidSourcePathError,
    SourceNotFoundError,
    InvalidSourceUrlError,
    InvalidDigestFormatError,
    IntegrityMismatchError,
    InvalidVersionRangeError,
    RegistryLookupError,
    UnsatisfiableDependencyError,
    UnresolvedDependencyError,
    DependencyCycleError,
    UnknownExportError,
    UnresolvedTriggerComponentError,
    InvalidHostSpecError,
    InvalidFilePatternsError,
    ValidationReport,
)

from .manifest import (
    Application,
    Component,
    Variable,
    Trigger,
    TriggerBinding,
    LocalSource,
    InlineSource,
    RemoteSource,
    RegistryDependency,
    PathDependency,
    VersionRangeDependency,
    FileMount,
    BuildConfig,
    ToolConfig,
)

from .loader import (
    ManifestLoader,
    ManifestSource,
    TomlManifestParser,
)

from .collaborators import (
    StaticRegistry,
    LocalFilesystem,
)

from .config import (
    ConfigError,
    ConfigLoader,
    ResolverConfig,
)

from .resolved import (
    ResolvedApplication,
    ResolvedComponent,
    ResolvedTrigger,
)

from .sources import ContentReference
from .variables import BoundEnvironment, VariableBinder
from .versions import VersionRange
from .graph import DependencyGraph
from .fingerprint import FingerprintGenerator

__all__ = [
    # Resolver
    "Resolver",

    # Errors
    "ResolutionError",
    "ErrorSpan",
    "ManifestValidationError",
    "DuplicateNameError",
    "MissingRequiredVariableError",
    "UnknownVariableError",
    "InvalidSourcePathError",
    "SourceNotFoundError",
    "InvalidSourceUrlError",
    "InvalidDigestFormatError",
    "IntegrityMismatchError",
    "InvalidVersionRangeError",
    "RegistryLookupError",
    "UnsatisfiableDependencyError",
    "UnresolvedDependencyError",
    "DependencyCycleError",
    "UnknownExportError",
    "UnresolvedTriggerComponentError",
    "InvalidHostSpecError",
    "InvalidFilePatternsError",
    "ValidationReport",

    # Manifest model
    "Application",
    "Component",
    "Variable",
    "Trigger",
    "TriggerBinding",
    "LocalSource",
    "InlineSource",
    "RemoteSource",
    "RegistryDependency",
    "PathDependency",
    "VersionRangeDependency",
    "FileMount",
    "BuildConfig",
    "ToolConfig",

    # Loader
    "ManifestLoader",
    "ManifestSource",
    "TomlManifestParser",

    # Collaborators
    "StaticRegistry",
    "LocalFilesystem",

    # Config
    "ConfigError",
    "ConfigLoader",
    "ResolverConfig",

    # Output
    "ResolvedApplication",
    "ResolvedComponent",
    "ResolvedTrigger",
    "ContentReference",
    "BoundEnvironment",
    "VariableBinder",
    "VersionRange",
    "DependencyGraph",
    "FingerprintGenerator",
]
