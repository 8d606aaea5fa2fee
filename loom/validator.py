"""
Cross-manifest validator.

Runs last, over the fully merged picture (synthesized inline components and
inherited configuration included). Only checks, never mutates.
"""

from typing import Dict, Iterable, List, Mapping, Optional, Sequence
from collections import Counter
import logging
import re

from .errors import (
    DuplicateNameError,
    InvalidFilePatternsError,
    InvalidHostSpecError,
    UnresolvedTriggerComponentError,
    ValidationReport,
)
from .inheritance import EffectiveConfig
from .manifest import Component, Trigger


logger = logging.getLogger("loom.validator")

HOST_SPEC_RE = re.compile(
    r"^(?P<scheme>[^:/]+)://(?P<host>[^/:]+)(?::(?P<port>[^/]+))?/?$"
)
HOST_LABEL = r"[A-Za-z0-9]([A-Za-z0-9-]*[A-Za-z0-9])?"
HOST_NAME_RE = re.compile(rf"^(\*\.)?{HOST_LABEL}(\.{HOST_LABEL})*$")

GLOB_CHARS = "*?[{"


class CrossManifestValidator:
    """
    Validates referential integrity and syntactic invariants.

    Checks:
    - Trigger bindings name declared components
    - Outbound hosts are scheme://host[:port] with an allowed scheme
    - exclude_files only alongside inclusion patterns
    - Component and variable names are unique
    """

    def __init__(self, allowed_schemes: Sequence[str] = ("http", "https")):
        self.allowed_schemes = tuple(allowed_schemes)

    def validate(
        self,
        *,
        triggers: Sequence[Trigger],
        components: Mapping[str, Component],
        effective: Mapping[str, EffectiveConfig],
        component_names: Optional[Iterable[str]] = None,
        variable_names: Optional[Iterable[str]] = None,
    ) -> ValidationReport:
        """
        Validate the merged application.

        Args:
            triggers: Triggers in declaration order
            components: Components by name (inline ones included)
            effective: Effective configuration per component
            component_names: Every component name as declared, duplicates kept
            variable_names: Every variable name as declared, duplicates kept

        Returns:
            ValidationReport (warnings only)

        Raises:
            ResolutionError: The single error found, or an aggregate
        """
        report = ValidationReport()

        self._validate_unique(
            "component",
            component_names if component_names is not None else list(components),
            report,
        )
        self._validate_unique("variable", variable_names or [], report)
        self._validate_triggers(triggers, components, report)

        for name in sorted(components):
            config = effective.get(name) or EffectiveConfig.explicit(components[name])
            self._validate_hosts(name, config.allowed_outbound_hosts, report)
            self._validate_files(components[name], report)

        for warning in report.warnings:
            logger.warning(warning)

        if report.has_errors():
            raise report.to_exception()

        return report

    def _validate_unique(
        self,
        namespace: str,
        names: Iterable[str],
        report: ValidationReport,
    ) -> None:
        counts = Counter(names)
        for name in sorted(counts):
            if counts[name] > 1:
                report.add_error(DuplicateNameError(namespace, name))

    def _validate_triggers(
        self,
        triggers: Sequence[Trigger],
        components: Mapping[str, Component],
        report: ValidationReport,
    ) -> None:
        positions: Dict[str, int] = {}
        for trigger in triggers:
            index = positions.get(trigger.kind, 0)
            positions[trigger.kind] = index + 1

            target = trigger.binding.component
            if target is not None and target not in components:
                report.add_error(
                    UnresolvedTriggerComponentError(trigger.kind, index, target)
                )

    def _validate_hosts(
        self,
        component: str,
        hosts: Sequence[str],
        report: ValidationReport,
    ) -> None:
        for host in hosts:
            reason = self.host_spec_problem(host)
            if reason:
                report.add_error(InvalidHostSpecError(component, host, reason))

    def host_spec_problem(self, spec: str) -> Optional[str]:
        """
        Explain what is wrong with an outbound host entry.

        Returns:
            None if the entry is valid, else a short reason
        """
        match = HOST_SPEC_RE.match(spec or "")
        if match is None:
            return "expected scheme://host[:port]"

        scheme = match.group("scheme")
        if scheme not in self.allowed_schemes:
            allowed = ", ".join(self.allowed_schemes)
            return f"scheme '{scheme}' is not allowed (allowed: {allowed})"

        host = match.group("host")
        if host != "*" and not HOST_NAME_RE.match(host):
            return f"'{host}' is not a valid host name"

        port = match.group("port")
        if port is not None and port != "*":
            if not port.isdigit() or not 0 < int(port) < 65536:
                return f"'{port}' is not a valid port"

        return None

    def _validate_files(self, component: Component, report: ValidationReport) -> None:
        includes = component.include_patterns()
        excludes = component.exclude_files

        if excludes and not includes:
            report.add_error(InvalidFilePatternsError(component.name, list(excludes)))
            return

        include_prefixes = [fixed_prefix(p) for p in includes]
        for pattern in excludes:
            prefix = fixed_prefix(pattern)
            if not any(_overlaps(prefix, other) for other in include_prefixes):
                report.add_warning(
                    f"Component '{component.name}': exclude pattern '{pattern}' "
                    "can never match any included file"
                )


def fixed_prefix(pattern: str) -> str:
    """The literal part of a glob before its first wildcard."""
    while pattern.startswith("./"):
        pattern = pattern[2:]
    for index, char in enumerate(pattern):
        if char in GLOB_CHARS:
            return pattern[:index]
    return pattern


def _overlaps(a: str, b: str) -> bool:
    return a.startswith(b) or b.startswith(a)
