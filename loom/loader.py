"""
Manifest loader - turns manifest documents into the typed model.

Accepts plain mappings or .toml/.yaml/.yml/.json files. Several documents can
be layered into one application: later layers override application
metadata, triggers concatenate, and a variable or component declared in two
layers is a DuplicateNameError.
"""

from typing import Any, Dict, List, Mapping, Optional, Sequence, Union
from pathlib import Path
from dataclasses import dataclass
import copy
import json
import logging
import tomllib

import yaml

from .errors import DuplicateNameError, ErrorSpan, ManifestValidationError
from .manifest import (
    Application,
    BuildConfig,
    Component,
    ComponentSource,
    Dependency,
    FileMount,
    InlineSource,
    LocalSource,
    PathDependency,
    RegistryDependency,
    RemoteSource,
    ToolConfig,
    Trigger,
    TriggerBinding,
    Variable,
    VersionRangeDependency,
)


logger = logging.getLogger("loom.loader")

MANIFEST_VERSION = 2

COMPONENT_KEYS = {
    "source",
    "description",
    "environment",
    "files",
    "exclude_files",
    "allowed_outbound_hosts",
    "key_value_stores",
    "sqlite_databases",
    "ai_models",
    "dependencies_inherit_configuration",
    "dependencies",
    "build",
    "tool",
    "exports",
}
VARIABLE_KEYS = {"default", "required", "secret"}
REGISTRY_DEPENDENCY_KEYS = {"version", "registry", "package", "export"}


@dataclass
class ManifestSource:
    """
    Manifest source descriptor.

    Either an in-memory mapping or a file path.
    """

    type: str  # "mapping", "file"
    value: Any
    origin: str  # Source location for diagnostics

    def __repr__(self) -> str:
        return f"ManifestSource({self.type}, {self.origin})"


ManifestInput = Union[Mapping[str, Any], str, Path, ManifestSource]


class ManifestLoader:
    """
    Loads manifest documents.

    Loading only parses and checks shape. Names, sources and dependencies are
    resolved later by the Resolver.
    """

    def load(self, source: ManifestInput) -> Application:
        """
        Load one manifest.

        Args:
            source: Mapping, path to a manifest file, or ManifestSource

        Returns:
            Application

        Raises:
            ManifestValidationError: If the document is malformed
        """
        manifest_source = self._resolve_source(source)
        data = self._read(manifest_source)
        return self._dict_to_application(data, manifest_source.origin)

    def load_layers(self, sources: Sequence[ManifestInput]) -> Application:
        """
        Merge several manifest documents into one application.

        Args:
            sources: Layers, lowest precedence first

        Returns:
            Application

        Raises:
            DuplicateNameError: If two layers declare the same variable or component
            ManifestValidationError: If a layer or the merged result is malformed
        """
        if not sources:
            raise ManifestValidationError("unknown", ["No manifest documents given"])

        merged: Dict[str, Any] = {}
        seen: Dict[str, Dict[str, str]] = {"variable": {}, "component": {}}
        origins: List[str] = []

        for source in sources:
            manifest_source = self._resolve_source(source)
            data = self._read(manifest_source)
            origin = manifest_source.origin
            origins.append(origin)

            self._merge_layer(merged, data, origin, seen)
            logger.debug("Merged manifest layer %s", origin)

        return self._dict_to_application(merged, " + ".join(origins))

    def _merge_layer(
        self,
        merged: Dict[str, Any],
        data: Mapping[str, Any],
        origin: str,
        seen: Dict[str, Dict[str, str]],
    ) -> None:
        for key, value in data.items():
            if key == "application":
                _deep_merge(merged.setdefault("application", {}), _table(value, key, origin))
            elif key in ("variables", "component"):
                namespace = "variable" if key == "variables" else "component"
                table = merged.setdefault(key, {})
                for name, declaration in _table(value, key, origin).items():
                    if name in seen[namespace]:
                        raise DuplicateNameError(
                            namespace,
                            name,
                            sources=[seen[namespace][name], origin],
                            span=ErrorSpan(file=origin),
                        )
                    seen[namespace][name] = origin
                    table[name] = declaration
            elif key == "trigger":
                triggers = merged.setdefault("trigger", {})
                for kind, entries in _table(value, key, origin).items():
                    triggers.setdefault(kind, []).extend(_trigger_list(entries, kind, origin))
            else:
                merged[key] = value

    def _resolve_source(self, source: ManifestInput) -> ManifestSource:
        if isinstance(source, ManifestSource):
            return source
        if isinstance(source, Mapping):
            return ManifestSource(type="mapping", value=source, origin="<mapping>")
        if isinstance(source, (str, Path)):
            path = Path(source)
            return ManifestSource(type="file", value=path, origin=str(path))
        raise ValueError(f"Unknown manifest source type: {source!r}")

    def _read(self, source: ManifestSource) -> Mapping[str, Any]:
        if source.type == "mapping":
            data = source.value
        elif source.type == "file":
            data = self._read_file(source.value, source.origin)
        else:
            raise ValueError(f"Unknown source type: {source.type}")

        if not isinstance(data, Mapping):
            raise ManifestValidationError(
                source.origin,
                ["Manifest document must be a table/mapping"],
                span=ErrorSpan(file=source.origin),
            )
        return data

    def _read_file(self, path: Path, origin: str) -> Any:
        if not path.exists():
            raise ManifestValidationError(
                origin, [f"Manifest file not found: {path}"], span=ErrorSpan(file=origin)
            )

        text = path.read_text()
        try:
            if path.suffix == ".toml":
                return tomllib.loads(text)
            if path.suffix == ".json":
                return json.loads(text)
            if path.suffix in (".yaml", ".yml"):
                return yaml.safe_load(text)
        except (tomllib.TOMLDecodeError, json.JSONDecodeError, yaml.YAMLError) as e:
            raise ManifestValidationError(
                origin, [f"Parse error: {e}"], span=ErrorSpan(file=origin)
            ) from e

        raise ManifestValidationError(
            origin,
            [f"Unsupported manifest format: {path.suffix}"],
            span=ErrorSpan(file=origin),
        )

    def _dict_to_application(self, data: Mapping[str, Any], origin: str) -> Application:
        """
        Convert a manifest document to an Application.

        Shape errors are collected across the whole document and raised
        together.
        """
        errors: List[str] = []
        span = ErrorSpan(file=origin)

        version = data.get("spin_manifest_version", data.get("manifest_version"))
        if version is not None and version != MANIFEST_VERSION:
            errors.append(
                f"Unsupported manifest version {version!r} (expected {MANIFEST_VERSION})"
            )

        app_table = _optional_table(data.get("application"), "application", errors)
        name = app_table.get("name")
        if not isinstance(name, str) or not name:
            errors.append("Missing required field: application.name")
            name = ""

        variables: Dict[str, Variable] = {}
        for var_name, declaration in _optional_table(data.get("variables"), "variables", errors).items():
            variable = self._parse_variable(var_name, declaration, errors)
            if variable is not None:
                variables[var_name] = variable

        components: Dict[str, Component] = {}
        for comp_name, declaration in _optional_table(data.get("component"), "component", errors).items():
            component = self._parse_component(comp_name, declaration, errors)
            if component is not None:
                components[comp_name] = component

        triggers: List[Trigger] = []
        for kind, entries in _optional_table(data.get("trigger"), "trigger", errors).items():
            if not isinstance(entries, list):
                entries = [entries]
            for index, entry in enumerate(entries):
                trigger = self._parse_trigger(kind, index, entry, errors)
                if trigger is not None:
                    triggers.append(trigger)

        authors = app_table.get("authors", [])
        if not _is_str_list(authors):
            errors.append("application.authors must be a list of strings")
            authors = []

        trigger_settings = _nested_tables(app_table.get("trigger"), "application.trigger", errors)
        tools = _nested_tables(app_table.get("tool"), "application.tool", errors)

        if errors:
            raise ManifestValidationError(name or origin, errors, span=span)

        try:
            application = Application(
                name=name,
                version=str(app_table.get("version", "")),
                description=str(app_table.get("description", "")),
                authors=list(authors),
                variables=variables,
                triggers=triggers,
                components=components,
                trigger_settings=trigger_settings,
                tools=tools,
            )
        except ManifestValidationError as e:
            raise ManifestValidationError(e.manifest_name, e.validation_errors, span=span) from e

        logger.debug(
            "Loaded manifest %s from %s: %d component(s), %d trigger(s)",
            application.name, origin, len(components), len(triggers),
        )
        return application

    def _parse_variable(
        self, name: str, declaration: Any, errors: List[str]
    ) -> Optional[Variable]:
        where = f"variables.{name}"
        if not isinstance(declaration, Mapping):
            errors.append(f"{where} must be a table like {{ default = \"...\" }}")
            return None

        unknown = sorted(set(declaration) - VARIABLE_KEYS)
        if unknown:
            errors.append(f"{where}: unknown key(s) {', '.join(unknown)}")
            return None

        local_errors: List[str] = []
        required = _optional_bool(declaration, "required", where, local_errors)
        secret = _optional_bool(declaration, "secret", where, local_errors)
        if local_errors:
            errors.extend(local_errors)
            return None

        default = declaration.get("default")
        try:
            return Variable(
                default=None if default is None else str(default),
                required=required,
                secret=secret,
            )
        except ManifestValidationError as e:
            errors.extend(f"{where}: {message}" for message in e.validation_errors)
            return None

    def _parse_component(
        self, name: str, declaration: Any, errors: List[str]
    ) -> Optional[Component]:
        where = f"component.{name}"
        if not isinstance(declaration, Mapping):
            errors.append(f"{where} must be a table")
            return None

        local_errors: List[str] = []

        unknown = sorted(set(declaration) - COMPONENT_KEYS)
        if unknown:
            local_errors.append(f"{where}: unknown key(s) {', '.join(unknown)}")

        if "source" not in declaration:
            local_errors.append(f"{where}: missing required field 'source'")
            source = None
        else:
            source = _parse_source(declaration["source"], where, local_errors)

        environment = declaration.get("environment", {})
        if not isinstance(environment, Mapping):
            local_errors.append(f"{where}.environment must be a table")
            environment = {}

        for key in ("exclude_files", "allowed_outbound_hosts", "key_value_stores",
                    "sqlite_databases", "ai_models", "exports"):
            if not _is_str_list(declaration.get(key, [])):
                local_errors.append(f"{where}.{key} must be a list of strings")

        inherit = _optional_bool(
            declaration, "dependencies_inherit_configuration", where, local_errors
        )

        files = _parse_files(declaration.get("files", []), where, local_errors)

        dependencies: Dict[str, Dependency] = {}
        for key, value in _optional_table(
            declaration.get("dependencies"), f"{where}.dependencies", local_errors
        ).items():
            dependency = _parse_dependency(value, f"{where}.dependencies.{key}", local_errors)
            if dependency is not None:
                dependencies[key] = dependency

        build = None
        if "build" in declaration:
            build = _parse_build(declaration["build"], where, local_errors)

        tools: Dict[str, ToolConfig] = {}
        for tool_name, tool in _optional_table(
            declaration.get("tool"), f"{where}.tool", local_errors
        ).items():
            if isinstance(tool, Mapping) and isinstance(tool.get("command"), str):
                tools[tool_name] = ToolConfig(command=tool["command"])
            else:
                local_errors.append(f"{where}.tool.{tool_name} must have a 'command' string")

        if local_errors:
            errors.extend(local_errors)
            return None

        try:
            return Component(
                name=name,
                source=source,
                description=str(declaration.get("description", "")),
                environment={str(k): str(v) for k, v in environment.items()},
                files=files,
                exclude_files=list(declaration.get("exclude_files", [])),
                allowed_outbound_hosts=list(declaration.get("allowed_outbound_hosts", [])),
                key_value_stores=list(declaration.get("key_value_stores", [])),
                sqlite_databases=list(declaration.get("sqlite_databases", [])),
                ai_models=list(declaration.get("ai_models", [])),
                dependencies_inherit_configuration=inherit,
                dependencies=dependencies,
                build=build,
                tools=tools,
                exports=list(declaration.get("exports", [])),
            )
        except ManifestValidationError as e:
            errors.extend(e.validation_errors)
            return None

    def _parse_trigger(
        self, kind: str, index: int, entry: Any, errors: List[str]
    ) -> Optional[Trigger]:
        where = f"trigger.{kind}[{index}]"
        if not isinstance(entry, Mapping):
            errors.append(f"{where} must be a table")
            return None

        target = entry.get("component")
        options = {k: v for k, v in entry.items() if k != "component"}

        if isinstance(target, str):
            binding = TriggerBinding(component=target)
        elif isinstance(target, Mapping):
            extra = sorted(set(target) - {"source"})
            if extra:
                errors.append(
                    f"{where}.component: inline components only take 'source' "
                    f"(got {', '.join(extra)})"
                )
                return None
            if "source" not in target:
                errors.append(f"{where}.component: inline component is missing 'source'")
                return None
            source = _parse_source(target["source"], f"{where}.component", errors)
            if source is None:
                return None
            binding = TriggerBinding(inline=source)
        else:
            errors.append(f"{where}: 'component' must be a name or an inline {{ source = ... }}")
            return None

        return Trigger(kind=kind, binding=binding, options=options)


class TomlManifestParser:
    """ManifestParser for TOML text."""

    def __init__(self, loader: Optional[ManifestLoader] = None):
        self.loader = loader or ManifestLoader()

    def parse(self, text: str, origin: str = "<string>") -> Application:
        try:
            data = tomllib.loads(text)
        except tomllib.TOMLDecodeError as e:
            raise ManifestValidationError(
                origin, [f"Parse error: {e}"], span=ErrorSpan(file=origin)
            ) from e
        return self.loader.load(ManifestSource(type="mapping", value=data, origin=origin))


# ============================================================================
# Field parsers
# ============================================================================


def _parse_source(value: Any, where: str, errors: List[str]) -> Optional[ComponentSource]:
    if isinstance(value, str):
        return LocalSource(path=value)
    if isinstance(value, (bytes, bytearray)):
        return InlineSource(content=bytes(value), origin=f"{where}.source")
    if isinstance(value, Mapping):
        if set(value) == {"url", "digest"}:
            return RemoteSource(url=str(value["url"]), digest=str(value["digest"]))
        if "url" in value and "digest" not in value:
            errors.append(f"{where}.source: remote sources require a 'digest'")
            return None
    errors.append(f"{where}.source must be a path or {{ url = ..., digest = ... }}")
    return None


def _parse_files(value: Any, where: str, errors: List[str]) -> List[FileMount]:
    if not isinstance(value, list):
        errors.append(f"{where}.files must be a list")
        return []

    mounts: List[FileMount] = []
    for entry in value:
        if isinstance(entry, str):
            mounts.append(FileMount(source=entry))
        elif (
            isinstance(entry, Mapping)
            and isinstance(entry.get("source"), str)
            and isinstance(entry.get("destination"), str)
        ):
            mounts.append(FileMount(source=entry["source"], destination=entry["destination"]))
        else:
            errors.append(
                f"{where}.files entries must be a glob or {{ source = ..., destination = ... }}"
            )
    return mounts


def _parse_dependency(value: Any, where: str, errors: List[str]) -> Optional[Dependency]:
    if isinstance(value, str):
        return VersionRangeDependency(version=value)

    if not isinstance(value, Mapping):
        errors.append(f"{where} must be a version range or a table")
        return None

    if "path" in value:
        extra = sorted(set(value) - {"path", "export"})
        if extra:
            errors.append(f"{where}: path dependencies do not take {', '.join(extra)}")
            return None
        return PathDependency(path=str(value["path"]), export=value.get("export"))

    unknown = sorted(set(value) - REGISTRY_DEPENDENCY_KEYS)
    if unknown:
        errors.append(f"{where}: unknown key(s) {', '.join(unknown)}")
        return None
    if not isinstance(value.get("version"), str):
        errors.append(f"{where}: registry dependencies require a 'version' range")
        return None

    return RegistryDependency(
        version=value["version"],
        registry=value.get("registry"),
        package=value.get("package"),
        export=value.get("export"),
    )


def _parse_build(value: Any, where: str, errors: List[str]) -> Optional[BuildConfig]:
    if not isinstance(value, Mapping) or not isinstance(value.get("command"), str):
        errors.append(f"{where}.build must have a 'command' string")
        return None
    watch = value.get("watch", [])
    if not _is_str_list(watch):
        errors.append(f"{where}.build.watch must be a list of strings")
        return None
    return BuildConfig(command=value["command"], workdir=value.get("workdir"), watch=list(watch))


def _optional_table(value: Any, where: str, errors: List[str]) -> Mapping[str, Any]:
    if value is None:
        return {}
    if not isinstance(value, Mapping):
        errors.append(f"{where} must be a table")
        return {}
    return value


def _nested_tables(value: Any, where: str, errors: List[str]) -> Dict[str, Dict[str, Any]]:
    tables: Dict[str, Dict[str, Any]] = {}
    for key, entry in _optional_table(value, where, errors).items():
        if isinstance(entry, Mapping):
            tables[key] = dict(entry)
        else:
            errors.append(f"{where}.{key} must be a table")
    return tables


def _optional_bool(declaration: Mapping[str, Any], key: str, where: str, errors: List[str]) -> bool:
    value = declaration.get(key, False)
    if not isinstance(value, bool):
        errors.append(f"{where}.{key} must be true or false")
        return False
    return value


def _table(value: Any, where: str, origin: str) -> Mapping[str, Any]:
    if not isinstance(value, Mapping):
        raise ManifestValidationError(
            origin, [f"{where} must be a table"], span=ErrorSpan(file=origin)
        )
    return value


def _trigger_list(entries: Any, kind: str, origin: str) -> List[Any]:
    if isinstance(entries, list):
        return list(entries)
    if isinstance(entries, Mapping):
        return [entries]
    raise ManifestValidationError(
        origin, [f"trigger.{kind} must be a list of tables"], span=ErrorSpan(file=origin)
    )


def _is_str_list(value: Any) -> bool:
    return isinstance(value, list) and all(isinstance(v, str) for v in value)


def _deep_merge(target: Dict[str, Any], source: Mapping[str, Any]) -> None:
    for key, value in source.items():
        if key in target and isinstance(target[key], dict) and isinstance(value, Mapping):
            _deep_merge(target[key], value)
        else:
            target[key] = copy.deepcopy(value)
