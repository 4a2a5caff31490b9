"""
Data model for cached question sessions.

- Step: one recorded interaction with a question attempt
- QuestionRef / AttemptIdentity: what a cached state is keyed on
- DisplayOptions: how the question is shown, encoded as a fingerprint
- State: the cached projection of one remote session
"""

import hashlib
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional

from pydantic import BaseModel, Field

from opaquesync.engine.models import Results
from opaquesync.errors import MalformedStep
from opaquesync.session.vars import (
    ATTEMPT_VAR,
    BEHAVIOUR_VAR,
    DEFAULT_RANDOM_SEED,
    IDENTITY_VARS,
    LANGUAGE_VAR,
    OM_ACTION_PREFIX,
    RADIO_GROUP_VAR,
    RANDOM_SEED_VAR,
    USER_ID_VAR,
)


@dataclass
class Step:
    """
    One step of a question attempt.

    ``qt_vars`` are the question-type fields the user submitted;
    ``behaviour_vars`` are attempt-level variables. Names starting with an
    underscore are internal and never sent to the engine as input.
    """

    qt_vars: dict[str, Any] = field(default_factory=dict)
    behaviour_vars: dict[str, Any] = field(default_factory=dict)

    def has_behaviour_var(self, name: str) -> bool:
        return name in self.behaviour_vars

    def get_behaviour_var(self, name: str, default: Any = None) -> Any:
        return self.behaviour_vars.get(name, default)

    def all_data(self) -> dict[str, Any]:
        """All variables; behaviour variables get a ``-`` prefix."""
        data = dict(self.qt_vars)
        for name, value in self.behaviour_vars.items():
            data[f"-{name}"] = value
        return data

    def submitted_data(self) -> dict[str, Any]:
        """The variables a user submitted, as sent to ``process``."""
        data = {k: v for k, v in self.qt_vars.items() if not k.startswith("_")}
        for name, value in self.behaviour_vars.items():
            if not name.startswith("_"):
                data[f"-{name}"] = value
        if RADIO_GROUP_VAR in self.qt_vars:
            data[RADIO_GROUP_VAR] = self.qt_vars[RADIO_GROUP_VAR]
        return data

    @classmethod
    def first(
        cls,
        variant: int,
        user_id: Any,
        language: str,
        preferred_behaviour: str,
        random_seed: Any = DEFAULT_RANDOM_SEED,
    ) -> "Step":
        """
        Build step 0 of an attempt with the behaviour variables the engine
        needs to start a session.

        The variant is passed to the engine as the attempt number; the seed
        is a fixed conventional value unless given.
        """
        return cls(
            behaviour_vars={
                RANDOM_SEED_VAR: random_seed,
                ATTEMPT_VAR: variant,
                USER_ID_VAR: user_id,
                LANGUAGE_VAR: language,
                BEHAVIOUR_VAR: preferred_behaviour,
            }
        )

    def has_om_action(self) -> bool:
        """Whether this step records a click on one of the engine's buttons."""
        return any(name.startswith(OM_ACTION_PREFIX) for name in self.submitted_data())

    def is_same_response(self, previous: Optional["Step"]) -> bool:
        """
        Whether this step repeats ``previous`` and can be skipped.

        A step that presses an engine button is never a duplicate.
        """
        if previous is None or self.has_om_action():
            return False
        return _normalise(self.submitted_data()) == _normalise(previous.submitted_data())


def _normalise(data: dict[str, Any]) -> dict[str, str]:
    return {name: str(value) for name, value in data.items()}


@dataclass(frozen=True)
class QuestionRef:
    """Which question, on which engine, an attempt is at."""

    question_id: str
    engine_id: str
    remote_id: str
    remote_version: str


@dataclass(frozen=True)
class AttemptIdentity:
    """Everything about an attempt that stays fixed for its lifetime."""

    question: QuestionRef
    random_seed: str
    user_id: str
    language: str
    preferred_behaviour: str
    field_prefix: str = ""

    @classmethod
    def from_first_step(
        cls, question: QuestionRef, first_step: Optional[Step], field_prefix: str = ""
    ) -> "AttemptIdentity":
        """
        Build the identity from the behaviour variables of step 0.

        Raises:
            MalformedStep: If the step is missing or lacks an identity variable.
        """
        if first_step is None:
            raise MalformedStep("Question attempt has no first step.")

        missing = [v for v in IDENTITY_VARS if not first_step.has_behaviour_var(v)]
        if missing:
            raise MalformedStep(
                "First step of the question attempt not properly initialised "
                f"(missing {', '.join(missing)})."
            )

        return cls(
            question=question,
            random_seed=str(first_step.get_behaviour_var(RANDOM_SEED_VAR)),
            user_id=str(first_step.get_behaviour_var(USER_ID_VAR)),
            language=str(first_step.get_behaviour_var(LANGUAGE_VAR)),
            preferred_behaviour=str(first_step.get_behaviour_var(BEHAVIOUR_VAR)),
            field_prefix=field_prefix,
        )

    def cache_key(self) -> str:
        """
        Stable hash identifying this attempt without a database id.

        Display options are deliberately not part of the key.
        """
        raw = "|".join(
            [
                self.question.question_id,
                self.random_seed,
                self.user_id,
                self.language,
                self.preferred_behaviour,
            ]
        )
        return hashlib.md5(raw.encode("utf-8")).hexdigest()


@dataclass
class DisplayOptions:
    """Display flags passed through to the engine when a session starts."""

    readonly: bool = False
    marks: int = 2
    markdp: int = 2
    correctness: bool = True
    feedback: bool = True
    generalfeedback: bool = True

    def fingerprint(self) -> str:
        return "|".join(
            str(int(v))
            for v in (
                self.readonly,
                self.marks,
                self.markdp,
                self.correctness,
                self.feedback,
                self.generalfeedback,
            )
        )

    def to_init_params(self) -> dict[str, int]:
        return {
            "display_readonly": int(self.readonly),
            "display_marks": int(self.marks),
            "display_markdp": int(self.markdp),
            "display_correctness": int(self.correctness),
            "display_feedback": int(self.feedback),
            "display_generalfeedback": int(self.generalfeedback),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "DisplayOptions":
        return cls(**{k: data[k] for k in cls.__dataclass_fields__ if k in data})


def options_fingerprint(options: Optional[DisplayOptions]) -> str:
    """Encode display options for validity checks; ``None`` encodes to ``""``."""
    if options is None:
        return ""
    return options.fingerprint()


def _now() -> datetime:
    return datetime.now(timezone.utc)


class State(BaseModel):
    """
    The cached projection of one remote question session.

    Invariants:
        - results_sequence_number <= sequence_number
        - session_handle is set iff sequence_number >= 0 and not ended
    """

    cache_key: str = Field(frozen=True)

    # What is being attempted
    engine_id: str
    remote_id: str
    remote_version: str
    options: str = ""
    random_seed: str
    field_prefix: str = ""

    # What the engine has told us so far
    sequence_number: int = -1
    results_sequence_number: int = -1
    results: Optional[Results] = None
    ended: bool = False
    session_handle: Optional[str] = None
    markup: Optional[str] = None
    css_filename: Optional[str] = None
    progress_text: Optional[str] = None

    # Cache bookkeeping
    idle_age: int = 0
    last_modified: datetime = Field(default_factory=_now)

    @classmethod
    def new(cls, identity: AttemptIdentity, options: Optional[DisplayOptions]) -> "State":
        """A fresh state that has not yet started a remote session."""
        question = identity.question
        return cls(
            cache_key=identity.cache_key(),
            engine_id=question.engine_id,
            remote_id=question.remote_id,
            remote_version=question.remote_version,
            options=options_fingerprint(options),
            random_seed=identity.random_seed,
            field_prefix=identity.field_prefix,
        )

    @property
    def has_live_session(self) -> bool:
        return self.session_handle is not None

    def touch(self) -> None:
        """Reset the idle age and bump the modification time."""
        self.idle_age = 0
        self.last_modified = _now()

    def to_record(self) -> dict[str, Any]:
        """JSON-safe dict for storage in a host session."""
        return self.model_dump(mode="json", by_alias=False)

    @classmethod
    def from_record(cls, record: dict[str, Any]) -> "State":
        return cls.model_validate(record)
