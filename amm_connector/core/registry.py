# /amm_connector/core/registry.py
from typing import Callable, Dict, Generic, Hashable, TypeVar

from amm_connector.core.logger import get_logger

log = get_logger(__name__)

T = TypeVar("T")


class InstanceRegistry(Generic[T]):
    """One live instance per key: created on first access, dropped on close."""
    def __init__(self, kind: str):
        self.kind = kind
        self._instances: Dict[Hashable, T] = {}

    def get_or_create(self, key: Hashable, factory: Callable[[], T]) -> T:
        instance = self._instances.get(key)
        if instance is None:
            instance = factory()
            self._instances[key] = instance
            log.info("INSTANCE_CREATED", kind=self.kind, key=key)
        return instance

    def remove(self, key: Hashable, instance: T | None = None) -> bool:
        """Drops `key`; when `instance` is given only if it is still the registered one."""
        current = self._instances.get(key)
        if current is None or (instance is not None and current is not instance):
            return False
        del self._instances[key]
        log.info("INSTANCE_REMOVED", kind=self.kind, key=key)
        return True

    def __contains__(self, key: Hashable) -> bool:
        return key in self._instances
