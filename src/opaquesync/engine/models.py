"""
Pydantic models for the engine layer.

Covers:
- Engine definitions (where an engine lives and how to authenticate)
- Start/process responses returned by a remote question engine
- JSON-RPC envelopes used by the HTTP transport
"""

import base64
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


# ─── Engine Definitions ──────────────────────────────────────────────


class EngineDefinition(BaseModel):
    """A remote question engine the synchronizer may talk to."""

    engine_id: str
    name: str = ""
    url: str
    passkey_salt: str = ""
    timeout: float = 10.0


# ─── Engine Responses ────────────────────────────────────────────────


class Resource(BaseModel):
    """An auxiliary file (image, script, stylesheet) shipped with a question."""

    model_config = ConfigDict(populate_by_name=True)

    filename: str
    mime_type: str = Field(default="application/octet-stream", alias="mimeType")
    content: bytes = b""

    @field_validator("content", mode="before")
    @classmethod
    def _decode_content(cls, value: Any) -> Any:
        # Over the wire content arrives base64-encoded
        if isinstance(value, str):
            return base64.b64decode(value)
        return value


class Score(BaseModel):
    """Marks awarded on one scoring axis. The default axis is ``""``."""

    axis: str = ""
    marks: float = 0.0


class Results(BaseModel):
    """Scored results reported by the engine once a question is answered."""

    model_config = ConfigDict(populate_by_name=True)

    scores: list[Score] = Field(default_factory=list)
    attempts: int = 0
    question_line: Optional[str] = Field(default=None, alias="questionLine")
    answer_line: Optional[str] = Field(default=None, alias="answerLine")
    action_summary: Optional[str] = Field(default=None, alias="actionSummary")

    def default_axis_marks(self) -> Optional[float]:
        """Marks on the default axis, or None if the engine sent none."""
        return next((s.marks for s in self.scores if s.axis == ""), None)


class StartReturn(BaseModel):
    """Engine → client: result of starting a question session."""

    model_config = ConfigDict(populate_by_name=True)

    markup: str = Field(default="", alias="XHTML")
    session_handle: Optional[str] = Field(default=None, alias="questionSession")
    css: Optional[str] = Field(default=None, alias="CSS")
    resources: list[Resource] = Field(default_factory=list)
    progress_text: Optional[str] = Field(default=None, alias="progressInfo")
    ended: bool = Field(default=False, alias="questionEnd")


class ProcessReturn(BaseModel):
    """Engine → client: result of processing one step of user input."""

    model_config = ConfigDict(populate_by_name=True)

    markup: str = Field(default="", alias="XHTML")
    css: Optional[str] = Field(default=None, alias="CSS")
    resources: list[Resource] = Field(default_factory=list)
    results: Optional[Results] = None
    progress_text: Optional[str] = Field(default=None, alias="progressInfo")
    ended: bool = Field(default=False, alias="questionEnd")


# ─── JSON-RPC Envelopes ──────────────────────────────────────────────


class RpcRequest(BaseModel):
    """Client → engine: a single method call."""

    method: str
    params: dict[str, Any] = Field(default_factory=dict)


class RpcError(BaseModel):
    """Fault payload returned by the engine."""

    code: str | int = "server"
    message: str = ""


class RpcResponse(BaseModel):
    """Engine → client: either a result or an error."""

    result: Any = None
    error: Optional[RpcError] = None
