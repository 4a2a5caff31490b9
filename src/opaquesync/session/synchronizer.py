"""
State synchronizer — brings a cached question session up to date with an
attempt's recorded steps.

The remote engine keeps per-session state, so the only way to show the
question as it looks after step N is to have a session that has seen steps
0..N. The synchronizer finds a cached session that can get there, or starts
a new one, and replays the missing steps one at a time.

Nothing here retries: a step may be a submitted answer, and resending it
could change the outcome. Any failure during replay, from the engine or
while recording its response, discards the cached state before propagating,
so the next call starts clean.
"""

from dataclasses import dataclass
from typing import Any, Callable, Optional, Sequence, Union

from opaquesync.engine.connection import EngineConnection
from opaquesync.engine.models import ProcessReturn, Results, StartReturn
from opaquesync.errors import ConfigMismatch, RemoteFault, SequenceOutOfRange
from opaquesync.logger import get_logger
from opaquesync.session.cache import CacheStore
from opaquesync.session.resources import FileResourceCache, ResourceCache
from opaquesync.session.state import (
    AttemptIdentity,
    DisplayOptions,
    State,
    Step,
    options_fingerprint,
)

logger = get_logger(__name__)

EngineResponse = Union[StartReturn, ProcessReturn]
ResponseFilter = Callable[[EngineResponse, State], EngineResponse]
ResourceCacheFactory = Callable[[State], ResourceCache]


@dataclass(frozen=True)
class ProjectedView:
    """What the caller gets to render after a synchronize call."""

    cache_key: str
    markup: str
    progress_text: Optional[str]
    results: Optional[Results]
    results_sequence_number: int
    sequence_number: int
    ended: bool
    css_filename: Optional[str] = None
    css_url: Optional[str] = None


def _no_filter(response: EngineResponse, state: State) -> EngineResponse:
    return response


def _file_resource_cache(state: State) -> ResourceCache:
    return FileResourceCache(state.engine_id, state.remote_id, state.remote_version)


class StateSynchronizer:
    """
    Keeps cached States in step with attempts.

    Args:
        store: The cache scope for the current unit of work.
        resource_cache_factory: Builds the resource cache for a state.
        response_filter: Clean-up applied to every engine response before
            it is recorded.
        strings: Localized strings substituted for ``%%name%%`` tokens.
        replay_margin_seconds: Added to each call's timeout when budgeting
            a replay.
    """

    def __init__(
        self,
        store: CacheStore,
        resource_cache_factory: Optional[ResourceCacheFactory] = None,
        response_filter: Optional[ResponseFilter] = None,
        strings: Optional[dict[str, str]] = None,
        replay_margin_seconds: Optional[float] = None,
    ):
        if replay_margin_seconds is None:
            from opaquesync.config import CONFIG

            replay_margin_seconds = CONFIG.replay_margin_seconds

        self.store = store
        self.engines = store.engines
        self.resource_cache_factory = resource_cache_factory or _file_resource_cache
        self.response_filter = response_filter or _no_filter
        self.strings = dict(strings or {})
        self.replay_margin_seconds = replay_margin_seconds

    # ─── Public API ──────────────────────────────────────────────────

    def synchronize(
        self,
        identity: AttemptIdentity,
        step_log: Sequence[Step],
        pending_step: Optional[Step] = None,
        target_seq: Optional[int] = None,
        options: Optional[DisplayOptions] = None,
    ) -> ProjectedView:
        """
        Bring the attempt's cached state to ``target_seq`` and project it.

        Args:
            identity: The attempt being synchronized.
            step_log: Committed steps, oldest first.
            pending_step: A step being processed but not yet committed; it
                counts as if appended to ``step_log``.
            target_seq: Step index to reach; defaults to the last one.
            options: Display options; defaults to the last ones used in this
                cache scope.

        Returns:
            The projection of the synchronized state.

        Raises:
            SequenceOutOfRange: If ``target_seq`` names a step that does not exist.
            MalformedStep: If the first step lacks identity variables.
            RemoteFault: If the engine fails; the cached state is discarded first.
            Other errors raised while recording a response also discard the
            cached state before propagating.
        """
        available = len(step_log) + (1 if pending_step is not None else 0)
        if target_seq is None:
            target_seq = available - 1
        if target_seq < 0 or target_seq >= available:
            raise SequenceOutOfRange(target_seq, available)

        # Raises MalformedStep if step 0 was never initialised
        first_step = self._find_step(0, step_log, pending_step)
        AttemptIdentity.from_first_step(identity.question, first_step)

        key = identity.cache_key()

        with self.store.locked():
            if options is None:
                options = self.store.get_last_used_options()

            state = self.store.load(key)
            if state is not None:
                mismatch = self._check_validity(state, identity, target_seq, options)
                if mismatch is not None:
                    logger.warning(f"Discarding cached state {key}: {mismatch.reason}")
                    self.store.delete(state)
                    state = None
                else:
                    logger.debug(
                        f"Reusing cached state {key} at step {state.sequence_number}"
                    )

            if state is None:
                state = self._create_state(key, identity, options)
            else:
                # The prefix may only become known after the session started
                state.field_prefix = identity.field_prefix

            try:
                self._update(state, step_log, pending_step, target_seq, options)
            except RemoteFault as e:
                logger.warning(f"Engine fault while synchronizing {key}: {e}")
                self.store.delete(state)
                raise
            except Exception as e:
                # The engine may already have processed the step
                logger.warning(f"Failed to record engine response for {key}: {e}")
                self.store.delete(state)
                raise

            self.store.mark_fresh(state)
            return self._project(state)

    def invalidate(self, identity: AttemptIdentity) -> None:
        """Discard the cached state for an attempt, if any."""
        with self.store.locked():
            self.store.delete(self.store.load(identity.cache_key()))

    def replay_budget(self, engine_id: str, steps: int) -> float:
        """Worst-case seconds needed to replay ``steps`` calls on an engine."""
        timeout = self.engines.get_engine(engine_id).timeout
        return steps * (timeout + self.replay_margin_seconds)

    # ─── Validity & creation ─────────────────────────────────────────

    def _check_validity(
        self,
        state: State,
        identity: AttemptIdentity,
        target_seq: int,
        options: Optional[DisplayOptions],
    ) -> Optional[ConfigMismatch]:
        question = identity.question
        if state.engine_id != question.engine_id:
            return ConfigMismatch("engine changed")
        if (
            state.remote_id != question.remote_id
            or state.remote_version != question.remote_version
        ):
            return ConfigMismatch("question changed")
        if state.random_seed != identity.random_seed:
            return ConfigMismatch("random seed changed")
        if state.options != options_fingerprint(options):
            return ConfigMismatch("display options changed")
        if state.sequence_number > target_seq:
            return ConfigMismatch(
                f"state is at step {state.sequence_number}, past target {target_seq}"
            )
        return None

    def _create_state(
        self, key: str, identity: AttemptIdentity, options: Optional[DisplayOptions]
    ) -> State:
        state = State.new(identity, options)
        # Saved before any engine call so nested lookups find the same entry
        self.store.save(key, state)
        self.store.set_last_used_options(options)
        logger.debug(f"Created state {key} for question {identity.question.question_id}")
        return state

    # ─── Replay ──────────────────────────────────────────────────────

    def _update(
        self,
        state: State,
        step_log: Sequence[Step],
        pending_step: Optional[Step],
        target_seq: int,
        options: Optional[DisplayOptions],
    ) -> None:
        connection = self.engines.connect(state.engine_id)
        resource_cache = self.resource_cache_factory(state)

        to_replay = target_seq - max(state.sequence_number, 0)
        if state.sequence_number < 0:
            to_replay += 1
        if to_replay > 1 and not state.ended:
            logger.info(
                f"Replaying {to_replay} steps on engine '{state.engine_id}' "
                f"(budget {self.replay_budget(state.engine_id, to_replay):.0f}s)"
            )

        if state.sequence_number < 0:
            first_step = self._find_step(0, step_log, pending_step)
            self._start_session(state, connection, first_step, options, resource_cache)

        while state.sequence_number < target_seq and not state.ended:
            step = self._find_step(state.sequence_number + 1, step_log, pending_step)
            self._process_next_step(state, connection, step, resource_cache)

    def _start_session(
        self,
        state: State,
        connection: EngineConnection,
        first_step: Step,
        options: Optional[DisplayOptions],
        resource_cache: ResourceCache,
    ) -> None:
        response = connection.start(
            state.remote_id,
            state.remote_version,
            first_step.all_data(),
            resource_cache.list_cached_resources(),
            options,
        )
        self._apply_response(state, response, resource_cache)
        state.sequence_number = 0

        if response.ended:
            self._end_session(state)
        elif state.session_handle is None:
            raise RemoteFault("protocol", "Engine started a session without a handle")
        else:
            logger.info(
                f"Started question session {state.session_handle} "
                f"for {state.remote_id} v{state.remote_version}"
            )

    def _process_next_step(
        self,
        state: State,
        connection: EngineConnection,
        step: Step,
        resource_cache: ResourceCache,
    ) -> None:
        response = connection.process(state.session_handle, step.submitted_data())

        if response.results is not None:
            state.results = response.results
            state.results_sequence_number = state.sequence_number + 1

        self._apply_response(state, response, resource_cache)
        state.sequence_number += 1
        logger.debug(f"Replayed step {state.sequence_number} of {state.cache_key}")

        if response.ended:
            self._end_session(state)

    def _end_session(self, state: State) -> None:
        # The engine has already closed the session; there is nothing to stop
        logger.debug(f"Question session {state.session_handle} ended by engine")
        state.ended = True
        state.session_handle = None

    def _apply_response(
        self, state: State, response: EngineResponse, resource_cache: ResourceCache
    ) -> None:
        """Record the parts common to start and process responses."""
        response = self.response_filter(response, state)

        if response.markup or not response.ended:
            state.markup = response.markup

        handle = getattr(response, "session_handle", None)
        if handle:
            state.session_handle = handle

        if response.css:
            state.css_filename = resource_cache.stylesheet_filename(state.session_handle)
            replaces = self._replacements(state, resource_cache)
            del replaces["%%IDPREFIX%%"]  # not valid inside CSS
            resource_cache.cache_file(
                state.css_filename,
                "text/css;charset=UTF-8",
                _substitute(response.css, replaces),
            )

        if response.resources:
            resource_cache.cache_resources(response.resources)

        if response.progress_text is not None:
            state.progress_text = response.progress_text

    # ─── Projection ──────────────────────────────────────────────────

    def _replacements(self, state: State, resource_cache: ResourceCache) -> dict[str, str]:
        replaces = {
            "%%RESOURCES%%": resource_cache.file_url(""),
            "%%IDPREFIX%%": state.field_prefix,
            "%%%%": "%%",
        }
        for name, value in self.strings.items():
            replaces[f"%%{name}%%"] = value
        return replaces

    def _project(self, state: State) -> ProjectedView:
        resource_cache = self.resource_cache_factory(state)
        replaces = self._replacements(state, resource_cache)

        css_url = None
        if state.css_filename and resource_cache.file_in_cache(state.css_filename):
            css_url = resource_cache.file_url(state.css_filename)

        progress = state.progress_text
        return ProjectedView(
            cache_key=state.cache_key,
            markup=_substitute(state.markup or "", replaces),
            progress_text=_substitute(progress, replaces) if progress else progress,
            results=state.results,
            results_sequence_number=state.results_sequence_number,
            sequence_number=state.sequence_number,
            ended=state.ended,
            css_filename=state.css_filename,
            css_url=css_url,
        )

    @staticmethod
    def _find_step(
        seq: int, step_log: Sequence[Step], pending_step: Optional[Step]
    ) -> Step:
        """Step ``seq``, treating ``pending_step`` as appended to the log."""
        if 0 <= seq < len(step_log):
            return step_log[seq]
        if seq == len(step_log) and pending_step is not None:
            return pending_step
        raise SequenceOutOfRange(seq, len(step_log) + (pending_step is not None))


def _substitute(text: str, replaces: dict[str, Any]) -> str:
    for token, value in replaces.items():
        text = text.replace(token, str(value))
    return text
