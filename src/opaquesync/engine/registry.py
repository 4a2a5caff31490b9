"""
Registry of configured question engines.
Responsible for engine lookup and for handing out connections.
"""

from typing import Callable, Optional

from opaquesync.engine.base import RemoteSessionClient
from opaquesync.engine.connection import EngineConnection
from opaquesync.engine.models import EngineDefinition
from opaquesync.logger import get_logger

logger = get_logger(__name__)

ClientFactory = Callable[[EngineDefinition], RemoteSessionClient]


def _default_client_factory(engine: EngineDefinition) -> RemoteSessionClient:
    from opaquesync.engine.http_client import HttpSessionClient

    return HttpSessionClient(engine)


class EngineRegistry:
    """
    Central lookup for engine definitions and their clients.

    Clients are created lazily, once per engine, and reused.
    """

    def __init__(
        self,
        engines: Optional[list[EngineDefinition]] = None,
        client_factory: Optional[ClientFactory] = None,
        question_base_url: str = "",
    ):
        self.engines: dict[str, EngineDefinition] = {}
        self._clients: dict[str, RemoteSessionClient] = {}
        self._client_factory = client_factory or _default_client_factory
        self.question_base_url = question_base_url

        for engine in engines or []:
            self.register_engine(engine)

    @classmethod
    def from_config(cls, client_factory: Optional[ClientFactory] = None):
        """Build a registry from the global configuration."""
        from opaquesync.config import CONFIG

        return cls(
            CONFIG.engines,
            client_factory=client_factory,
            question_base_url=CONFIG.question_base_url,
        )

    def register_engine(self, engine: EngineDefinition) -> None:
        """
        Add an engine, replacing any earlier definition with the same id.

        Args:
            engine: The engine definition to register.
        """
        logger.info(f"Registering engine: {engine.name or engine.engine_id} ({engine.url})")
        self.engines[engine.engine_id] = engine
        stale = self._clients.pop(engine.engine_id, None)
        if stale is not None:
            stale.close()

    def get_engine(self, engine_id: str) -> EngineDefinition:
        """
        Lookup an engine definition.

        Raises:
            KeyError: If no engine with that id is configured.
        """
        engine = self.engines.get(engine_id)
        if engine is None:
            raise KeyError(f"Engine not configured: {engine_id}")
        return engine

    def get_client(self, engine_id: str) -> RemoteSessionClient:
        """Return the (cached) client for an engine."""
        client = self._clients.get(engine_id)
        if client is None:
            client = self._client_factory(self.get_engine(engine_id))
            self._clients[engine_id] = client
        return client

    def connect(self, engine_id: str) -> EngineConnection:
        """Return a connection adapter for an engine."""
        return EngineConnection(
            self.get_engine(engine_id),
            self.get_client(engine_id),
            question_base_url=self.question_base_url,
        )

    def list_engines(self) -> list[dict]:
        """List configured engines for display."""
        return [
            {
                "engine_id": e.engine_id,
                "name": e.name,
                "url": e.url,
                "timeout": e.timeout,
            }
            for e in self.engines.values()
        ]

    def close(self) -> None:
        """Close every client created so far."""
        clients, self._clients = list(self._clients.values()), {}
        for client in clients:
            client.close()
