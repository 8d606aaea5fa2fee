"""
Resolver - main entry point for turning a manifest into a ResolvedApplication.

One pass, phases in order, the first failing phase aborts:

    bind variables -> resolve sources -> build dependency graph ->
    propagate inherited config -> validate -> emit
"""

from typing import Any, Dict, List, Mapping, Optional, Tuple
import logging
import re

from .config import ResolverConfig
from .dependencies import DependencyGraphBuilder
from .inheritance import ConfigInheritancePropagator
from .loader import ManifestLoader
from .manifest import Application, Component, Trigger, TriggerBinding
from .resolved import ApplicationEmitter, ResolvedApplication, ResolvedTrigger, freeze
from .sources import SourceResolver
from .validator import CrossManifestValidator
from .variables import VariableBinder


logger = logging.getLogger("loom.resolver")


class Resolver:
    """
    Resolves application manifests.

    Holds only collaborators and policy; every call to resolve() is
    independent.

    Args:
        registry: RegistryLookup collaborator
        filesystem: Filesystem collaborator
        config: ResolverConfig (defaults apply when omitted)
    """

    def __init__(
        self,
        registry: Any = None,
        filesystem: Any = None,
        config: Optional[ResolverConfig] = None,
        *,
        loader: Optional[ManifestLoader] = None,
    ):
        self.registry = registry
        self.filesystem = filesystem
        self.config = config or ResolverConfig()
        self.loader = loader or ManifestLoader()

    def resolve_document(
        self,
        source: Any,
        variables: Optional[Mapping[str, Optional[str]]] = None,
    ) -> ResolvedApplication:
        """
        Load then resolve.

        Args:
            source: A manifest mapping or path, or a list of layers
            variables: Externally supplied variable values

        Returns:
            ResolvedApplication
        """
        if isinstance(source, (list, tuple)):
            application = self.loader.load_layers(source)
        else:
            application = self.loader.load(source)
        return self.resolve(application, variables)

    def resolve(
        self,
        application: Application,
        variables: Optional[Mapping[str, Optional[str]]] = None,
    ) -> ResolvedApplication:
        """
        Resolve a parsed application.

        Args:
            application: Parsed manifest
            variables: Externally supplied variable values

        Returns:
            ResolvedApplication

        Raises:
            ResolutionError: Whatever the first failing phase raises
        """
        config = self.config
        logger.info("Resolving application %s", application.name)

        # Phase 1: Bind variables
        bound = VariableBinder().bind(application.variables, variables)
        logger.info("Bound %d variable(s)", len(bound))

        # Phase 2: Synthesize components for inline trigger sources
        components, component_names, triggers, resolved_triggers = synthesize_inline_components(
            application
        )

        # Phase 3: Resolve component sources
        sources = SourceResolver(
            allow_parent_paths=config.allow_parent_paths,
            filesystem=self.filesystem if config.check_source_exists else None,
        )
        references = {
            name: sources.resolve(name, components[name].source)
            for name in sorted(components)
        }
        logger.info("Resolved %d component source(s)", len(references))

        # Phase 4: Build dependency graph, detect cycles, compute build order
        builder = DependencyGraphBuilder(
            self.registry,
            filesystem=self.filesystem if config.check_source_exists else None,
            default_registry=config.default_registry,
            allow_parent_paths=config.allow_parent_paths,
        )
        resolution = builder.build(components)
        logger.info(
            "Built dependency graph: %d node(s), %d edge(s)",
            len(resolution.graph),
            sum(len(pinned) for pinned in resolution.dependencies.values()),
        )

        # Phase 5: Propagate inherited configuration
        effective = ConfigInheritancePropagator(config.inheritance_set_merge).propagate(
            components, resolution
        )

        # Phase 6: Cross-manifest validation
        report = CrossManifestValidator(config.allowed_host_schemes).validate(
            triggers=triggers,
            components=components,
            effective=effective,
            component_names=component_names,
            variable_names=list(application.variables),
        )
        logger.info("Validation passed with %d warning(s)", len(report.warnings))

        # Phase 7: Emit
        resolved = ApplicationEmitter().emit(
            application,
            variables=bound,
            triggers=resolved_triggers,
            components=components,
            references=references,
            resolution=resolution,
            effective=effective,
            warnings=report.warnings,
        )
        logger.info(
            "Resolved application %s (fingerprint %s)", resolved.name, resolved.fingerprint[:12]
        )
        return resolved


def inline_component_name(kind: str, index: int) -> str:
    """Name given to the component synthesized for an inline trigger source."""
    slug = re.sub(r"[^a-z0-9]+", "-", kind.lower()).strip("-") or "trigger"
    if not slug[0].isalpha():
        slug = f"t-{slug}"
    return f"{slug}-inline-{index}"


def synthesize_inline_components(
    application: Application,
) -> Tuple[Dict[str, Component], List[str], List[Trigger], List[ResolvedTrigger]]:
    """
    Turn inline trigger sources into named components.

    Returns:
        (components by name, every component name as declared,
         triggers bound by name, resolved triggers)
    """
    components: Dict[str, Component] = dict(application.components)
    names: List[str] = list(application.components)
    triggers: List[Trigger] = []
    resolved: List[ResolvedTrigger] = []
    positions: Dict[str, int] = {}

    for trigger in application.triggers:
        index = positions.get(trigger.kind, 0)
        positions[trigger.kind] = index + 1
        options = freeze(trigger.options)

        if trigger.binding.is_inline:
            name = inline_component_name(trigger.kind, index)
            names.append(name)
            if name not in components:
                components[name] = Component(name=name, source=trigger.binding.inline)
                logger.debug("Synthesized component %s for inline %s trigger", name, trigger.kind)
            triggers.append(
                Trigger(kind=trigger.kind, binding=TriggerBinding(component=name), options=trigger.options)
            )
            resolved.append(ResolvedTrigger(kind=trigger.kind, component=name, options=options, inline=True))
        else:
            triggers.append(trigger)
            resolved.append(
                ResolvedTrigger(kind=trigger.kind, component=trigger.binding.component, options=options)
            )

    return components, names, triggers, resolved
