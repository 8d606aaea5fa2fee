"""
External collaborator interfaces consumed by the resolution engine.

The engine never touches the network or the disk directly; it asks these.
Each interface is narrow and synchronous. A caller wiring them to async
transports adapts the collaborator, not the engine.
"""

from typing import Any, Dict, Iterable, List, Mapping, Optional, Protocol, Sequence, Set, runtime_checkable
from dataclasses import dataclass, field
from pathlib import Path
import fnmatch
import json

import yaml

from .config import ConfigError


@runtime_checkable
class ManifestParser(Protocol):
    """Turns manifest text into an Application."""

    def parse(self, text: str) -> Any: ...


@runtime_checkable
class RegistryLookup(Protocol):
    """Lists the available versions of registry packages."""

    def resolve(
        self,
        package: str,
        version_range: str,
        registry: Optional[str] = None,
    ) -> Sequence[str]:
        """Available versions of ``package``. The engine re-filters by range."""
        ...

    def exports(
        self,
        package: str,
        version: str,
        registry: Optional[str] = None,
    ) -> Optional[Set[str]]:
        """Declared exports of one release, or None when unknown."""
        ...


@runtime_checkable
class Filesystem(Protocol):
    """Existence checks and glob matching against the application directory."""

    def exists(self, path: str) -> bool: ...

    def match_globs(self, patterns: Sequence[str], excludes: Sequence[str]) -> List[str]: ...


@runtime_checkable
class NetworkFetch(Protocol):
    """Downloads remote component bytes."""

    def fetch(self, url: str) -> bytes: ...


# ============================================================================
# In-memory / local implementations
# ============================================================================


@dataclass
class RegistryPackage:
    """One package in a StaticRegistry."""

    versions: List[str] = field(default_factory=list)
    exports: Dict[str, List[str]] = field(default_factory=dict)


class StaticRegistry:
    """
    Registry backed by a fixed package table.

    Packages are keyed by registry name (None = default registry) and then
    by package name.
    """

    def __init__(self, packages: Optional[Mapping[Optional[str], Mapping[str, RegistryPackage]]] = None):
        self._registries: Dict[Optional[str], Dict[str, RegistryPackage]] = {
            registry: dict(table) for registry, table in (packages or {}).items()
        }

    def add(
        self,
        package: str,
        versions: Iterable[str],
        *,
        registry: Optional[str] = None,
        exports: Optional[Mapping[str, Iterable[str]]] = None,
    ) -> "StaticRegistry":
        """Register versions (and optionally per-version exports) of a package."""
        table = self._registries.setdefault(registry, {})
        entry = table.setdefault(package, RegistryPackage())
        for version in versions:
            if version not in entry.versions:
                entry.versions.append(version)
        for version, names in (exports or {}).items():
            entry.exports[version] = list(names)
        return self

    def resolve(
        self,
        package: str,
        version_range: str,
        registry: Optional[str] = None,
    ) -> Sequence[str]:
        entry = self._registries.get(registry, {}).get(package)
        if entry is None:
            return []
        return list(entry.versions)

    def exports(
        self,
        package: str,
        version: str,
        registry: Optional[str] = None,
    ) -> Optional[Set[str]]:
        entry = self._registries.get(registry, {}).get(package)
        if entry is None or version not in entry.exports:
            return None
        return set(entry.exports[version])

    @classmethod
    def from_index(cls, data: Mapping[str, Any]) -> "StaticRegistry":
        """
        Build from an index document.

        Example (YAML)::

            packages:
              "fizz:buzz":
                versions: ["0.1.0", "1.0.0"]
                exports: {"1.0.0": ["fizz:buzz/run"]}
            registries:
              my-registry.com:
                "a:b":
                  versions: ["1.2.3"]
        """
        if not isinstance(data, Mapping):
            raise ConfigError("Registry index must contain a mapping", key="registry_index")

        registry = cls()
        for package, entry in _index_table(data.get("packages"), "packages").items():
            versions, exports = _index_entry(entry, f"packages.{package}")
            registry.add(package, versions, exports=exports)
        for name, table in _index_table(data.get("registries"), "registries").items():
            for package, entry in _index_table(table, f"registries.{name}").items():
                versions, exports = _index_entry(entry, f"registries.{name}.{package}")
                registry.add(package, versions, registry=name, exports=exports)
        return registry

    @classmethod
    def from_file(cls, path: str) -> "StaticRegistry":
        """Load an index from a .yaml/.yml or .json file."""
        index_path = Path(path)
        try:
            if index_path.suffix in (".yaml", ".yml"):
                data = yaml.safe_load(index_path.read_text()) or {}
            else:
                data = json.loads(index_path.read_text())
        except (json.JSONDecodeError, yaml.YAMLError) as e:
            raise ConfigError(
                f"Failed to parse registry index {path}: {e}", key="registry_index"
            ) from e
        return cls.from_index(data)


def _index_table(value: Any, where: str) -> Mapping[str, Any]:
    if value is None:
        return {}
    if not isinstance(value, Mapping):
        raise ConfigError(f"Registry index: '{where}' must be a mapping", key="registry_index")
    return value


def _index_strings(value: Any, where: str) -> List[str]:
    if not isinstance(value, list) or not all(isinstance(item, str) for item in value):
        raise ConfigError(
            f"Registry index: '{where}' must be a list of strings", key="registry_index"
        )
    return value


def _index_entry(entry: Any, where: str):
    entry = _index_table(entry, where)
    versions = _index_strings(entry.get("versions", []), f"{where}.versions")
    exports = {
        version: _index_strings(names, f"{where}.exports.{version}")
        for version, names in _index_table(entry.get("exports"), f"{where}.exports").items()
    }
    return versions, exports


class LocalFilesystem:
    """Filesystem collaborator rooted at the manifest directory."""

    def __init__(self, root: str = "."):
        self.root = Path(root)

    def exists(self, path: str) -> bool:
        return (self.root / path).exists()

    def match_globs(self, patterns: Sequence[str], excludes: Sequence[str]) -> List[str]:
        matched: Set[str] = set()
        for pattern in patterns:
            for candidate in self.root.glob(pattern):
                if candidate.is_file():
                    matched.add(candidate.relative_to(self.root).as_posix())
        return sorted(
            path for path in matched
            if not any(fnmatch.fnmatch(path, exclude) for exclude in excludes)
        )
