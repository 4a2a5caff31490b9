"""
Engine connection adapter.

Wraps a RemoteSessionClient and translates attempt-level data (the first
step's identity variables, display options) into the flat name/value lists
the engine's start call expects.
"""

import hashlib
from typing import TYPE_CHECKING, Any, Optional, Sequence

from opaquesync.engine.base import RemoteSessionClient
from opaquesync.engine.models import EngineDefinition, ProcessReturn, StartReturn
from opaquesync.session.vars import (
    BEHAVIOUR_VAR,
    LANGUAGE_VAR,
    RANDOM_SEED_VAR,
    USER_ID_VAR,
)

if TYPE_CHECKING:
    from opaquesync.session.state import DisplayOptions


class EngineConnection:
    """The calls the synchronizer makes against one engine."""

    def __init__(
        self,
        engine: EngineDefinition,
        client: RemoteSessionClient,
        question_base_url: str = "",
    ):
        self.engine = engine
        self.client = client
        self.question_base_url = question_base_url

    def generate_passkey(self, user_id: str) -> str:
        """Proves to the engine that we may start a session for this user."""
        return hashlib.md5(f"{self.engine.passkey_salt}{user_id}".encode()).hexdigest()

    def build_initial_params(
        self, data: dict[str, Any], options: Optional["DisplayOptions"] = None
    ) -> dict[str, Any]:
        """
        Initial parameters for ``start``.

        Args:
            data: All data of the first step (``Step.all_data()``).
            options: Display options, if known.
        """
        user_id = data[f"-{USER_ID_VAR}"]
        params: dict[str, Any] = {
            "randomseed": data[f"-{RANDOM_SEED_VAR}"],
            "userid": user_id,
            "language": data[f"-{LANGUAGE_VAR}"],
            "passKey": self.generate_passkey(str(user_id)),
            "preferredbehaviour": data[f"-{BEHAVIOUR_VAR}"],
        }
        if options is not None:
            params.update(options.to_init_params())
        return params

    def start(
        self,
        remote_id: str,
        remote_version: str,
        data: dict[str, Any],
        cached_resources: Sequence[str],
        options: Optional["DisplayOptions"] = None,
    ) -> StartReturn:
        params = self.build_initial_params(data, options)
        return self.client.start(
            remote_id,
            remote_version,
            self.question_base_url,
            list(params.keys()),
            list(params.values()),
            list(cached_resources),
        )

    def process(self, session_handle: str, response: dict[str, Any]) -> ProcessReturn:
        return self.client.process(
            session_handle, list(response.keys()), list(response.values())
        )

    def stop(self, session_handle: str) -> None:
        self.client.stop(session_handle)
