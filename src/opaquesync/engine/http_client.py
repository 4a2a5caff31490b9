"""
JSON-RPC-over-HTTP engine transport.

Each call is a single POST of ``{"method": ..., "params": {...}}`` to the
engine URL. The engine answers ``{"result": ...}`` on success or
``{"error": {"code": ..., "message": ...}}`` on a fault.
"""

from typing import Any, Optional, Sequence

import httpx
from pydantic import ValidationError

from opaquesync.engine.base import RemoteSessionClient
from opaquesync.engine.models import (
    EngineDefinition,
    ProcessReturn,
    RpcRequest,
    RpcResponse,
    StartReturn,
)
from opaquesync.errors import RemoteFault
from opaquesync.logger import get_logger

logger = get_logger(__name__)


class HttpSessionClient(RemoteSessionClient):
    """Talks to one engine over HTTP with a per-call timeout."""

    def __init__(
        self, engine: EngineDefinition, client: Optional[httpx.Client] = None
    ):
        self.engine = engine
        self._client = client or httpx.Client(timeout=engine.timeout)

    def start(
        self,
        question_id: str,
        version: str,
        base_url: str,
        init_param_names: Sequence[str],
        init_param_values: Sequence[str],
        cached_resource_names: Sequence[str],
    ) -> StartReturn:
        result = self._call(
            "start",
            {
                "questionID": question_id,
                "questionVersion": version,
                "questionBaseURL": base_url,
                "initialParamNames": list(init_param_names),
                "initialParamValues": [str(v) for v in init_param_values],
                "cachedResources": list(cached_resource_names),
            },
        )
        return self._parse(StartReturn, result, "start")

    def process(
        self,
        session_handle: str,
        field_names: Sequence[str],
        field_values: Sequence[str],
    ) -> ProcessReturn:
        result = self._call(
            "process",
            {
                "questionSession": session_handle,
                "names": list(field_names),
                "values": [str(v) for v in field_values],
            },
        )
        return self._parse(ProcessReturn, result, "process")

    def stop(self, session_handle: str) -> None:
        self._call("stop", {"questionSession": session_handle})

    def close(self) -> None:
        self._client.close()

    def _call(self, method: str, params: dict[str, Any]) -> Any:
        """POST one RPC call and unwrap the envelope."""
        request = RpcRequest(method=method, params=params)
        logger.debug(f"Calling '{method}' on engine '{self.engine.engine_id}'")

        try:
            resp = self._client.post(self.engine.url, json=request.model_dump())
            resp.raise_for_status()
            envelope = RpcResponse.model_validate(resp.json())
        except httpx.TimeoutException:
            raise RemoteFault(
                "timeout",
                f"Engine '{self.engine.engine_id}' did not answer '{method}' "
                f"within {self.engine.timeout}s",
            ) from None
        except httpx.HTTPStatusError as e:
            raise RemoteFault(
                "http", f"Engine returned status {e.response.status_code}"
            ) from e
        except httpx.HTTPError as e:
            raise RemoteFault("transport", str(e)) from e
        except (ValueError, ValidationError) as e:
            raise RemoteFault("protocol", f"Malformed response to '{method}': {e}")

        if envelope.error is not None:
            raise RemoteFault(str(envelope.error.code), envelope.error.message)

        return envelope.result

    @staticmethod
    def _parse(model, result: Any, method: str):
        try:
            return model.model_validate(result or {})
        except ValidationError as e:
            raise RemoteFault("protocol", f"Malformed '{method}' result: {e}")
