"""
Base class for remote session clients.

A remote session client is the narrow RPC surface of a question engine:
start a session, feed it one step of user input at a time, and stop it.
Every failure at this boundary surfaces as ``RemoteFault``.
"""

from abc import ABC, abstractmethod
from typing import Sequence

from opaquesync.engine.models import ProcessReturn, StartReturn


class RemoteSessionClient(ABC):
    """
    Abstract base class for engine transports.

    Implementations are synchronous; each call blocks until the engine
    answers or faults. No call is ever retried at this layer.
    """

    @abstractmethod
    def start(
        self,
        question_id: str,
        version: str,
        base_url: str,
        init_param_names: Sequence[str],
        init_param_values: Sequence[str],
        cached_resource_names: Sequence[str],
    ) -> StartReturn:
        """
        Start a new question session.

        Args:
            question_id: The engine's identifier for the question.
            version: The question version.
            base_url: Where the engine may fetch the question package from.
            init_param_names: Names of the initial parameters.
            init_param_values: Values, positionally matching the names.
            cached_resource_names: Resources the client already holds, so the
                engine need not send them again.

        Returns:
            The start response, normally carrying a session handle.

        Raises:
            RemoteFault: If the engine rejects the call or is unreachable.
        """
        pass

    @abstractmethod
    def process(
        self,
        session_handle: str,
        field_names: Sequence[str],
        field_values: Sequence[str],
    ) -> ProcessReturn:
        """
        Send one step of user input to a live session.

        Raises:
            RemoteFault: If the engine rejects the call or is unreachable.
        """
        pass

    @abstractmethod
    def stop(self, session_handle: str) -> None:
        """
        Release a live session on the engine.

        Raises:
            RemoteFault: If the engine rejects the call or is unreachable.
        """
        pass

    def close(self) -> None:
        """Release transport resources. Safe to call more than once."""
        pass
