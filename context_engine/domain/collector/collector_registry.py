from typing import Dict, Iterator, List, Optional, Tuple
import itertools
import threading

import structlog
from pydantic import BaseModel, ConfigDict

from context_engine.domain.errors import RegistryError
from .base_collector import BaseCollector, CollectorKind

logger = structlog.get_logger(__name__)


class CollectorRegistration(BaseModel):
    """Registry entry for a collector. Replaced, never mutated."""
    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    name: str
    description: str
    version: str
    kind: CollectorKind
    priority: int
    sequence: int
    collector: BaseCollector

    @classmethod
    def for_collector(
        cls,
        collector: BaseCollector,
        sequence: int,
        name: Optional[str] = None,
        priority: Optional[int] = None,
    ) -> "CollectorRegistration":
        return cls(
            name=name or collector.name,
            description=collector.description,
            version=collector.version,
            kind=collector.kind,
            priority=collector.priority if priority is None else priority,
            sequence=sequence,
            collector=collector,
        )


class CollectorRegistry:
    """Registry for managing available collectors.

    Registrations live in an immutable tuple that is swapped under a lock on
    every change. Readers take one snapshot and never observe a partial
    update.
    """

    def __init__(self):
        self._registrations: Tuple[CollectorRegistration, ...] = ()
        self._lock = threading.Lock()
        self._sequence = itertools.count()

    def register(
        self,
        collector: BaseCollector,
        name: Optional[str] = None,
        priority: Optional[int] = None,
    ) -> CollectorRegistration:
        """Register a new collector under a unique name"""

        with self._lock:
            registration = CollectorRegistration.for_collector(
                collector, next(self._sequence), name=name, priority=priority
            )
            if any(r.name == registration.name for r in self._registrations):
                raise RegistryError(f"Collector '{registration.name}' is already registered")

            self._registrations = self._registrations + (registration,)

        logger.info("Registered collector",
                   name=registration.name,
                   priority=registration.priority,
                   kind=registration.kind.value)
        return registration

    def unregister(self, name: str) -> CollectorRegistration:
        """Remove a collector by name"""

        with self._lock:
            removed = self._find(name)
            if removed is None:
                raise RegistryError(f"Collector '{name}' is not registered")
            self._registrations = tuple(r for r in self._registrations if r.name != name)

        logger.info("Unregistered collector", name=name)
        return removed

    def replace(
        self,
        name: str,
        collector: BaseCollector,
        keep_name: bool = True,
    ) -> CollectorRegistration:
        """Atomically swap the collector registered under name.

        The new collector inherits the old priority and position in
        registration order. With keep_name it also takes over the old name;
        otherwise it is registered under its own name, which must not collide
        with another registration.

        Any other registration holding the same collector instance is removed
        in the same swap, so the collector is never registered twice.
        """

        with self._lock:
            old = self._find(name)
            if old is None:
                raise RegistryError(f"Collector '{name}' is not registered")

            superseded = [
                r.name for r in self._registrations
                if r.collector is collector and r.name != name
            ]

            new_name = name if keep_name else collector.name
            if new_name != name and new_name not in superseded and self._find(new_name) is not None:
                raise RegistryError(f"Collector '{new_name}' is already registered")

            replacement = CollectorRegistration.for_collector(
                collector, old.sequence, name=new_name, priority=old.priority
            )
            self._registrations = tuple(
                replacement if r.name == name else r
                for r in self._registrations
                if r.name not in superseded
            )

        logger.info("Replaced collector",
                   name=name,
                   new_name=new_name,
                   old_collector=old.collector.name,
                   new_collector=collector.name,
                   superseded=superseded)
        return replacement

    def snapshot(self) -> Tuple[CollectorRegistration, ...]:
        """Current registrations in registration order"""
        return self._registrations

    def get(self, name: str) -> Optional[CollectorRegistration]:
        """Get the registration for a name"""
        return self._find(name)

    def find_by_collector(self, collector: BaseCollector) -> Optional[CollectorRegistration]:
        """Get the registration holding this exact collector instance"""

        for registration in self._registrations:
            if registration.collector is collector:
                return registration
        return None

    def names(self) -> List[str]:
        return [r.name for r in self._registrations]

    def get_info(self) -> Dict[str, Dict]:
        """Collector information keyed by registration name"""
        return {r.name: r.collector.get_info() for r in self._registrations}

    def clear(self):
        """Remove every registration"""

        with self._lock:
            self._registrations = ()

    def _find(self, name: str) -> Optional[CollectorRegistration]:
        for registration in self._registrations:
            if registration.name == name:
                return registration
        return None

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and self._find(name) is not None

    def __len__(self) -> int:
        return len(self._registrations)

    def __iter__(self) -> Iterator[CollectorRegistration]:
        return iter(self._registrations)


# Process-wide registry, empty until collectors are registered
_default_registry = CollectorRegistry()


def get_collector_registry() -> CollectorRegistry:
    """Get the process-wide collector registry"""
    return _default_registry
