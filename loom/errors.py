"""
Loom resolution error types with rich diagnostics.

Every failure of a resolution pass is one of these. None of them is
recoverable inside the engine: a pass either yields a complete
ResolvedApplication or raises.
"""

from typing import List, Dict, Any, Optional
from dataclasses import dataclass, field


@dataclass
class ErrorSpan:
    """Manifest location for error context."""

    file: str
    line: Optional[int] = None
    column: Optional[int] = None
    snippet: Optional[str] = None

    def __str__(self) -> str:
        parts = [self.file]
        if self.line is not None:
            parts.append(f":{self.line}")
            if self.column is not None:
                parts.append(f":{self.column}")
        return "".join(parts)


class ResolutionError(Exception):
    """Base error for all Loom resolution errors."""

    def __init__(
        self,
        message: str,
        *,
        span: Optional[ErrorSpan] = None,
        suggestion: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.span = span
        self.suggestion = suggestion
        self.details = details or {}

    def format_error(self) -> str:
        """Format error with rich diagnostics."""
        lines = []

        lines.append(f"❌ {self.__class__.__name__}: {self.message}")

        if self.span:
            lines.append(f"   at {self.span}")
            if self.span.snippet:
                lines.append(f"\n   {self.span.snippet}")

        if self.details:
            lines.append("\n   Details:")
            for key, value in self.details.items():
                lines.append(f"   - {key}: {value}")

        if self.suggestion:
            lines.append(f"\n   💡 Suggestion: {self.suggestion}")

        return "\n".join(lines)

    def __str__(self) -> str:
        return self.format_error()


# ============================================================================
# Manifest shape
# ============================================================================


class ManifestValidationError(ResolutionError):
    """
    Manifest structure is invalid.

    Missing required fields, wrong types, malformed names, etc.
    """

    def __init__(
        self,
        manifest_name: str,
        validation_errors: List[str],
        *,
        span: Optional[ErrorSpan] = None,
    ):
        self.manifest_name = manifest_name
        self.validation_errors = validation_errors

        error_list = "\n".join(f"   - {e}" for e in validation_errors)

        super().__init__(
            f"Manifest '{manifest_name}' validation failed:\n{error_list}",
            span=span,
            suggestion=(
                "Ensure the manifest declares [application] with a name, and that "
                "every component has a source."
            ),
            details={
                "manifest": manifest_name,
                "error_count": len(validation_errors),
            },
        )


class DuplicateNameError(ResolutionError):
    """
    The same name is declared twice within one namespace.

    Example:
        [component.api] in base.toml
        [component.api] in overrides.toml  <- DUPLICATE
    """

    def __init__(
        self,
        namespace: str,
        name: str,
        sources: Optional[List[str]] = None,
        *,
        span: Optional[ErrorSpan] = None,
    ):
        self.namespace = namespace
        self.name = name
        self.sources = sources or []

        message = f"Duplicate {namespace} name '{name}'"
        if self.sources:
            source_list = "\n".join(f"   - {s}" for s in self.sources)
            message += f" declared in:\n{source_list}"

        super().__init__(
            message,
            span=span,
            suggestion=f"Each {namespace} must have a unique name. Rename or remove one.",
            details={"namespace": namespace, "name": name},
        )


# ============================================================================
# Variables
# ============================================================================


class MissingRequiredVariableError(ResolutionError):
    """A required variable was not supplied."""

    def __init__(self, name: str):
        self.name = name
        super().__init__(
            f"Required variable '{name}' has no value",
            suggestion=(
                f"Supply it with `--var {name}=...` or the "
                f"LOOM_VARIABLE_{name.upper()} environment variable."
            ),
            details={"variable": name},
        )


class UnknownVariableError(ResolutionError):
    """A value was supplied for a variable the manifest does not declare."""

    def __init__(self, name: str, declared: Optional[List[str]] = None):
        self.name = name
        self.declared = declared or []
        super().__init__(
            f"Value supplied for undeclared variable '{name}'",
            suggestion="Declare it under [variables] or drop it from the supplied set.",
            details={"variable": name, "declared": self.declared},
        )


# ============================================================================
# Sources
# ============================================================================


class InvalidSourcePathError(ResolutionError):
    """A local source path is empty or escapes the application directory."""

    def __init__(self, component: str, path: str, reason: str):
        self.component = component
        self.path = path
        self.reason = reason
        super().__init__(
            f"Component '{component}' has invalid source path '{path}': {reason}",
            suggestion="Use a path relative to the manifest directory.",
            details={"component": component, "path": path},
        )


class SourceNotFoundError(ResolutionError):
    """A local source file does not exist."""

    def __init__(self, component: str, path: str):
        self.component = component
        self.path = path
        super().__init__(
            f"Source '{path}' of component '{component}' does not exist",
            suggestion="Build the component first, or fix the source path.",
            details={"component": component, "path": path},
        )


class InvalidSourceUrlError(ResolutionError):
    """A remote source URL is malformed or uses an unsupported scheme."""

    def __init__(self, component: str, url: str):
        self.component = component
        self.url = url
        super().__init__(
            f"Component '{component}' has invalid source URL '{url}'",
            suggestion="Remote sources must use an http:// or https:// URL.",
            details={"component": component, "url": url},
        )


class InvalidDigestFormatError(ResolutionError):
    """A remote source digest is not `sha256:` followed by 64 lowercase hex chars."""

    def __init__(self, component: str, digest: str):
        self.component = component
        self.digest = digest
        super().__init__(
            f"Component '{component}' has invalid digest '{digest}'",
            suggestion="Digests must look like 'sha256:<64 lowercase hex characters>'.",
            details={"component": component, "digest": digest},
        )


class IntegrityMismatchError(ResolutionError):
    """Fetched bytes do not match the expected digest."""

    def __init__(self, location: str, expected: str, actual: str):
        self.location = location
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"Content of '{location}' does not match its digest\n"
            f"   Expected: {expected}\n"
            f"   Actual:   {actual}",
            suggestion="Update the digest in the manifest, or check the upstream artifact.",
            details={"location": location, "expected": expected, "actual": actual},
        )


# ============================================================================
# Dependencies
# ============================================================================


class InvalidVersionRangeError(ResolutionError):
    """A dependency version range cannot be parsed."""

    def __init__(self, version_range: str, reason: str = ""):
        self.version_range = version_range
        message = f"Invalid version range '{version_range}'"
        if reason:
            message += f": {reason}"
        super().__init__(
            message,
            suggestion="Use ranges like '^1.2.3', '>=0.1.0, <2', '~1.4' or '=0.1.0'.",
            details={"range": version_range},
        )


class RegistryLookupError(ResolutionError):
    """The registry collaborator failed or is not configured."""

    def __init__(self, package: str, reason: str, *, registry: Optional[str] = None):
        self.package = package
        self.registry = registry
        self.reason = reason
        super().__init__(
            f"Registry lookup for '{package}' failed: {reason}",
            details={"package": package, "registry": registry or "default"},
        )


class UnsatisfiableDependencyError(ResolutionError):
    """No available version satisfies a dependency's range."""

    def __init__(
        self,
        component: str,
        key: str,
        version_range: str,
        available: Optional[List[str]] = None,
    ):
        self.component = component
        self.key = key
        self.version_range = version_range
        self.available = available or []
        super().__init__(
            f"Dependency '{key}' of component '{component}' cannot be satisfied "
            f"by range '{version_range}'",
            suggestion="Widen the range or publish a matching version.",
            details={
                "component": component,
                "dependency": key,
                "range": version_range,
                "available": self.available,
            },
        )


class UnresolvedDependencyError(ResolutionError):
    """A path dependency points at nothing."""

    def __init__(self, component: str, key: str, target: str):
        self.component = component
        self.key = key
        self.target = target
        super().__init__(
            f"Dependency '{key}' of component '{component}' points at "
            f"'{target}', which does not exist",
            suggestion="Point the dependency at a component's source path or an existing file.",
            details={"component": component, "dependency": key, "target": target},
        )


class DependencyCycleError(ResolutionError):
    """
    Circular dependency detected in the component graph.

    Example:
        api depends on auth
        auth depends on api  <- CYCLE
    """

    def __init__(
        self,
        cycle: List[str],
        *,
        span: Optional[ErrorSpan] = None,
    ):
        self.cycle = cycle
        cycle_repr = " → ".join(cycle) + f" → {cycle[0]}"

        super().__init__(
            f"Circular dependency detected: {cycle_repr}",
            span=span,
            suggestion=(
                "Break the cycle by removing one dependency, or move the shared "
                "interface into its own component."
            ),
            details={"cycle": cycle, "cycle_length": len(cycle)},
        )


class UnknownExportError(ResolutionError):
    """A dependency asks for an export its target does not declare."""

    def __init__(
        self,
        component: str,
        export: str,
        *,
        key: Optional[str] = None,
        target: Optional[str] = None,
        available: Optional[List[str]] = None,
    ):
        self.component = component
        self.export = export
        self.key = key
        self.target = target
        self.available = available or []
        super().__init__(
            f"Component '{component}' requests export '{export}' which "
            f"'{target or key}' does not declare",
            suggestion="Pick one of the target's declared exports.",
            details={
                "component": component,
                "export": export,
                "dependency": key,
                "available": self.available,
            },
        )


# ============================================================================
# Cross-manifest validation
# ============================================================================


class UnresolvedTriggerComponentError(ResolutionError):
    """A trigger names a component that is not declared."""

    def __init__(self, trigger_kind: str, index: int, component: str):
        self.trigger_kind = trigger_kind
        self.index = index
        self.component = component
        super().__init__(
            f"Trigger {trigger_kind}[{index}] references undeclared component '{component}'",
            suggestion=f"Declare [component.{component}] or fix the trigger's component name.",
            details={"trigger": trigger_kind, "index": index, "component": component},
        )


class InvalidHostSpecError(ResolutionError):
    """An allowed_outbound_hosts entry is not `scheme://host[:port]`."""

    def __init__(self, component: str, host: str, reason: str):
        self.component = component
        self.host = host
        self.reason = reason
        super().__init__(
            f"Component '{component}' has invalid outbound host '{host}': {reason}",
            suggestion="Use the form 'https://example.com:443' (ports and hosts may be '*').",
            details={"component": component, "host": host},
        )


class InvalidFilePatternsError(ResolutionError):
    """exclude_files is set on a component that includes no files."""

    def __init__(self, component: str, excludes: List[str]):
        self.component = component
        self.excludes = excludes
        super().__init__(
            f"Component '{component}' excludes files but includes none",
            suggestion="Remove exclude_files or add inclusion patterns to files.",
            details={"component": component, "exclude_files": excludes},
        )


@dataclass
class ValidationReport:
    """
    Aggregated validation report.

    Used during validation to collect all errors before failing.
    """

    errors: List[ResolutionError] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    def add_error(self, error: ResolutionError) -> None:
        """Add error to report."""
        self.errors.append(error)

    def add_warning(self, warning: str) -> None:
        """Add warning to report."""
        self.warnings.append(warning)

    def has_errors(self) -> bool:
        """Check if report has errors."""
        return len(self.errors) > 0

    def to_dict(self) -> Dict[str, Any]:
        """Serialize report."""
        return {
            "error_count": len(self.errors),
            "warning_count": len(self.warnings),
            "errors": [
                {
                    "type": e.__class__.__name__,
                    "message": e.message,
                    "details": e.details,
                }
                for e in self.errors
            ],
            "warnings": self.warnings,
        }

    def to_exception(self) -> ResolutionError:
        """Convert report to exception."""
        if not self.errors:
            raise ValueError("Cannot convert empty report to exception")

        if len(self.errors) == 1:
            return self.errors[0]

        error_summary = "\n".join(
            f"   {i+1}. {e.message}" for i, e in enumerate(self.errors)
        )

        aggregated = ResolutionError(
            f"Multiple validation errors ({len(self.errors)}):\n{error_summary}",
            suggestion="Fix all errors and retry.",
            details=self.to_dict(),
        )
        aggregated.errors = list(self.errors)
        return aggregated

    def format_report(self) -> str:
        """Format report for display."""
        lines = []

        if self.errors:
            lines.append(f"❌ {len(self.errors)} error(s):")
            for i, error in enumerate(self.errors, 1):
                lines.append(f"\n{i}. {error.format_error()}")

        if self.warnings:
            lines.append(f"\n⚠️  {len(self.warnings)} warning(s):")
            for i, warning in enumerate(self.warnings, 1):
                lines.append(f"   {i}. {warning}")

        if not self.errors and not self.warnings:
            lines.append("✅ No errors or warnings")

        return "\n".join(lines)
