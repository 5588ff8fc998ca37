# /amm_connector/connectors/spenders.py
from typing import Callable, Dict

from amm_connector.core.logger import get_logger

log = get_logger(__name__)


class SpenderDirectory:
    """
    Maps a connector name to a callable returning that connector's router
    address. Resolvers are registered at startup and only called on lookup,
    so connectors can reference each other without import-time instantiation.
    """
    def __init__(self):
        self._resolvers: Dict[str, Callable[[], str]] = {}

    def register(self, name: str, resolver: Callable[[], str]):
        self._resolvers[name] = resolver

    def resolve(self, requested: str) -> str:
        resolver = self._resolvers.get(requested)
        if resolver is None:
            # Not a connector name, so the caller passed an address.
            return requested
        spender = resolver()
        log.debug("SPENDER_RESOLVED", name=requested, spender=spender)
        return spender


spenders = SpenderDirectory()
