"""
Config inheritance propagator.

A component with ``dependencies_inherit_configuration`` pushes its effective
environment, outbound hosts and resource bindings down to its direct
component dependencies. A dependency passes that on only if it opts in too.
"""

from typing import Dict, Iterable, List, Mapping, Tuple
from dataclasses import dataclass, field
import logging

from .dependencies import GraphResolution
from .manifest import Component


logger = logging.getLogger("loom.inheritance")

SET_FIELDS = (
    "allowed_outbound_hosts",
    "key_value_stores",
    "sqlite_databases",
    "ai_models",
)

EXPLICIT = "explicit"
UNION = "union"


@dataclass(frozen=True)
class EffectiveConfig:
    """A component's explicit configuration overlaid on what it inherited."""

    environment: Dict[str, str] = field(default_factory=dict)
    allowed_outbound_hosts: Tuple[str, ...] = ()
    key_value_stores: Tuple[str, ...] = ()
    sqlite_databases: Tuple[str, ...] = ()
    ai_models: Tuple[str, ...] = ()
    inherited_from: Tuple[str, ...] = ()

    @classmethod
    def explicit(cls, component: Component) -> "EffectiveConfig":
        return cls(
            environment=dict(sorted(component.environment.items())),
            **{name: _dedupe(getattr(component, name)) for name in SET_FIELDS},
        )


def _dedupe(values: Iterable[str]) -> Tuple[str, ...]:
    return tuple(dict.fromkeys(values))


class ConfigInheritancePropagator:
    """
    Computes effective configuration for every component.

    Explicit settings always win: an environment key the component declares
    is never replaced. Under the default ``union`` set policy declared
    entries come first and inherited ones are appended. The ``explicit``
    policy keeps a non-empty declared set (e.g. allowed_outbound_hosts)
    as-is and only fills an empty one from its parents.
    """

    def __init__(self, set_merge: str = UNION):
        if set_merge not in (EXPLICIT, UNION):
            raise ValueError(f"Unknown set merge policy: {set_merge}")
        self.set_merge = set_merge

    def propagate(
        self,
        components: Mapping[str, Component],
        resolution: GraphResolution,
    ) -> Dict[str, EffectiveConfig]:
        """
        Walk the graph top-down and merge inherited configuration.

        Must run on an acyclic graph: dependents are visited before their
        dependencies (reverse build order), so a node's effective config is
        final before it is pushed further down.

        Args:
            components: Components by name
            resolution: Output of the dependency graph builder

        Returns:
            Mapping of component name -> EffectiveConfig
        """
        pushed: Dict[str, List[Tuple[str, EffectiveConfig]]] = {
            name: [] for name in components
        }
        effective: Dict[str, EffectiveConfig] = {}

        for name in reversed(resolution.component_order()):
            component = components[name]
            effective[name] = self._merge(component, pushed[name])

            if not component.dependencies_inherit_configuration:
                continue

            for dependency in resolution.component_dependencies(name):
                pushed[dependency].append((name, effective[name]))
                logger.debug("%s passes its configuration to %s", name, dependency)

        return effective

    def _merge(
        self,
        component: Component,
        parents: List[Tuple[str, EffectiveConfig]],
    ) -> EffectiveConfig:
        own = EffectiveConfig.explicit(component)
        if not parents:
            return own

        parents = sorted(parents, key=lambda item: item[0])

        inherited_env: Dict[str, str] = {}
        for _, config in parents:
            for key, value in config.environment.items():
                inherited_env.setdefault(key, value)
        environment = dict(sorted({**inherited_env, **own.environment}.items()))

        merged_sets = {}
        for name in SET_FIELDS:
            explicit = getattr(own, name)
            inherited = _dedupe(
                value for _, config in parents for value in getattr(config, name)
            )
            if self.set_merge == UNION:
                merged_sets[name] = _dedupe(explicit + inherited)
            else:
                merged_sets[name] = explicit if explicit else inherited

        return EffectiveConfig(
            environment=environment,
            inherited_from=tuple(parent for parent, _ in parents),
            **merged_sets,
        )
