# ============================================================================
# PROBE REGISTRY
# ============================================================================
# EPOCH: 1 - HEALTH CHECK EXECUTION
# STATUS: Infrastructure - Probe registration
# PURPOSE: Register, discover and select probes
# CREATED: 19 OCT 2026
# ============================================================================
"""
Probe Registry

Keeps registered probes in registration order, each with its descriptor
merged against the process defaults. Listeners (the executor) are told
about every registration change so per-probe state and timers follow
without a restart.

Usage:
    # Decorator registration
    @register_probe("disk", tags=["system"], schedule="30s")
    class DiskProbe(Probe):
        ...

    # Manual registration
    registry = get_registry()
    registry.register(ProbeDescriptor(name="disk"), DiskProbe())

    # Selection
    entries = registry.select(TagFilter.parse("system,-slow"))
"""

import itertools
import logging
from dataclasses import dataclass
from typing import Callable, Dict, Iterable, List, Optional, Type

from core.config import ExecutorDefaults, get_defaults
from health.core import Probe, ProbeDescriptor
from health.errors import DuplicateProbeError, UnknownProbeError
from health.filters import TagFilter
from health.schedule import Schedule, parse_schedule
from health.sticky import retention_seconds

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ProbeSettings:
    """Descriptor values merged with defaults. Durations in seconds."""
    timeout: float
    cache_ttl: float
    grace_period: float
    sticky_retention: Optional[float] = None
    schedule: Optional[Schedule] = None

    @classmethod
    def resolve(cls, descriptor: ProbeDescriptor, defaults: ExecutorDefaults) -> "ProbeSettings":
        def seconds(value: Optional[int], default_ms: int) -> float:
            return (default_ms if value is None else value) / 1000.0

        sticky_ms = descriptor.sticky_retention_ms
        if sticky_ms is None:
            sticky_ms = defaults.sticky_retention_ms

        return cls(
            timeout=seconds(descriptor.timeout_ms, defaults.timeout_ms),
            cache_ttl=seconds(descriptor.cache_ttl_ms, defaults.result_cache_ttl_ms),
            grace_period=seconds(descriptor.grace_period_ms, defaults.grace_period_ms),
            sticky_retention=retention_seconds(sticky_ms),
            schedule=parse_schedule(descriptor.schedule) if descriptor.schedule else None,
        )


@dataclass(frozen=True)
class RegisteredProbe:
    """A probe as the executor sees it."""
    descriptor: ProbeDescriptor
    probe: Probe
    settings: ProbeSettings
    token: int

    @property
    def name(self) -> str:
        return self.descriptor.name


# (event, entry) where event is "registered", "unregistered" or "replaced"
RegistryListener = Callable[[str, RegisteredProbe], None]


class ProbeRegistry:
    """
    Registry of probes keyed by name.

    Every registration gets a fresh token, so state written by a probe
    execution that outlives its registration can be recognised and dropped.
    """

    def __init__(self, defaults: Optional[ExecutorDefaults] = None):
        self.defaults = defaults or get_defaults()
        self._entries: Dict[str, RegisteredProbe] = {}
        self._listeners: List[RegistryListener] = []
        self._tokens = itertools.count(1)

    def add_listener(self, listener: RegistryListener) -> None:
        self._listeners.append(listener)

    def remove_listener(self, listener: RegistryListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def _notify(self, event: str, entry: RegisteredProbe) -> None:
        for listener in list(self._listeners):
            listener(event, entry)

    def register(self, descriptor: ProbeDescriptor, probe: Probe) -> RegisteredProbe:
        """
        Register a probe.

        Raises:
            DuplicateProbeError: If a probe with the same name is registered
            InvalidScheduleError: If the schedule expression does not parse
        """
        if descriptor.name in self._entries:
            raise DuplicateProbeError(descriptor.name)

        entry = RegisteredProbe(
            descriptor=descriptor,
            probe=probe,
            settings=ProbeSettings.resolve(descriptor, self.defaults),
            token=next(self._tokens),
        )
        self._entries[descriptor.name] = entry
        logger.debug(
            f"Registered probe: {descriptor.name} "
            f"(tags={sorted(descriptor.tags)}, schedule={descriptor.schedule})"
        )
        self._notify("registered", entry)
        return entry

    def register_class(
        self,
        probe_class: Type[Probe],
        descriptor: ProbeDescriptor,
        **kwargs,
    ) -> RegisteredProbe:
        """Instantiate ``probe_class`` with ``kwargs`` and register it."""
        return self.register(descriptor, probe_class(**kwargs))

    def replace(self, descriptor: ProbeDescriptor) -> RegisteredProbe:
        """
        Swap the descriptor of a registered probe, keeping its position and state.

        Raises:
            UnknownProbeError: If nothing is registered under the name
        """
        current = self._entries.get(descriptor.name)
        if current is None:
            raise UnknownProbeError(descriptor.name)

        entry = RegisteredProbe(
            descriptor=descriptor,
            probe=current.probe,
            settings=ProbeSettings.resolve(descriptor, self.defaults),
            token=current.token,
        )
        self._entries[descriptor.name] = entry
        logger.debug(f"Replaced descriptor of probe: {descriptor.name}")
        self._notify("replaced", entry)
        return entry

    def unregister(self, name: str) -> bool:
        """
        Remove a probe by name.

        Returns:
            True if the probe was removed
        """
        entry = self._entries.pop(name, None)
        if entry is None:
            return False
        logger.debug(f"Unregistered probe: {name}")
        self._notify("unregistered", entry)
        return True

    def get(self, name: str) -> Optional[RegisteredProbe]:
        return self._entries.get(name)

    def is_current(self, entry: RegisteredProbe) -> bool:
        current = self._entries.get(entry.name)
        return current is not None and current.token == entry.token

    def get_all(self) -> List[RegisteredProbe]:
        """All registered probes in registration order."""
        return list(self._entries.values())

    def get_scheduled(self) -> List[RegisteredProbe]:
        return [e for e in self._entries.values() if e.settings.schedule is not None]

    def select(
        self,
        tag_filter: TagFilter,
        names: Optional[Iterable[str]] = None,
        exclude_names: Optional[Iterable[str]] = None,
    ) -> List[RegisteredProbe]:
        """
        Probes matching a tag filter and/or explicit names, in registration order.

        With names only, just those probes. With a non-empty tag filter too,
        the union of both selections.
        """
        wanted = set(names or ())
        excluded = set(exclude_names or ())
        use_tags = not wanted or not tag_filter.is_empty

        selected = []
        for entry in self._entries.values():
            if entry.name in excluded:
                continue
            if entry.name in wanted or (use_tags and tag_filter.matches(entry.descriptor.tags)):
                selected.append(entry)
        return selected

    def clear(self) -> None:
        """Remove all registered probes."""
        for name in list(self._entries):
            self.unregister(name)

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, name: str) -> bool:
        return name in self._entries


# ============================================================================
# GLOBAL REGISTRY & DECORATOR
# ============================================================================

_registry: Optional[ProbeRegistry] = None


def get_registry() -> ProbeRegistry:
    """Get the global probe registry."""
    global _registry
    if _registry is None:
        _registry = ProbeRegistry()
    return _registry


def reset_registry() -> None:
    """Discard the global registry (for testing)."""
    global _registry
    _registry = None


def register_probe(
    name: str,
    tags: Iterable[str] = (),
    title: Optional[str] = None,
    schedule: Optional[str] = None,
    timeout_ms: Optional[int] = None,
    cache_ttl_ms: Optional[int] = None,
    sticky_retention_ms: Optional[int] = None,
    grace_period_ms: Optional[int] = None,
):
    """
    Decorator to register a probe class with the global registry.

    The class is instantiated without arguments.

    Example:
        @register_probe("orders-db", tags=["db", "critical"], timeout_ms=500)
        class OrdersDbProbe(Probe):
            async def execute(self) -> Result:
                ...
    """
    descriptor = ProbeDescriptor(
        name=name,
        title=title,
        tags=frozenset(tags),
        schedule=schedule,
        timeout_ms=timeout_ms,
        cache_ttl_ms=cache_ttl_ms,
        sticky_retention_ms=sticky_retention_ms,
        grace_period_ms=grace_period_ms,
    )

    def decorator(cls: Type[Probe]) -> Type[Probe]:
        get_registry().register_class(cls, descriptor)
        return cls

    return decorator


# ============================================================================
# EXPORTS
# ============================================================================

__all__ = [
    "ProbeSettings",
    "RegisteredProbe",
    "ProbeRegistry",
    "get_registry",
    "reset_registry",
    "register_probe",
]
