"""Shared pytest fixtures and fakes."""

import itertools

import pytest

from opaquesync.engine.base import RemoteSessionClient
from opaquesync.engine.models import EngineDefinition, ProcessReturn, StartReturn
from opaquesync.engine.registry import EngineRegistry
from opaquesync.errors import RemoteFault
from opaquesync.session.cache import CacheStore
from opaquesync.session.resources import FileResourceCache
from opaquesync.session.state import AttemptIdentity, QuestionRef, Step
from opaquesync.session.synchronizer import StateSynchronizer


class FakeEngineClient(RemoteSessionClient):
    """
    In-memory engine that records every call.

    Each process call returns markup echoing the step count. Tests can queue
    custom responses or faults with ``next_process`` / ``fail_next``.
    """

    def __init__(self):
        self.calls: list[tuple] = []
        self.live: set[str] = set()
        self._handles = itertools.count(1)
        self._steps: dict[str, int] = {}
        self._queued: list = []
        self._fail: dict[str, RemoteFault] = {}
        self.start_response: dict = {}

    def count(self, method: str) -> int:
        return sum(1 for c in self.calls if c[0] == method)

    def fail_next(self, method: str, code: str = "server", message: str = "boom"):
        self._fail[method] = RemoteFault(code, message)

    def next_process(self, **fields):
        self._queued.append(fields)

    def start(
        self,
        question_id,
        version,
        base_url,
        init_param_names,
        init_param_values,
        cached_resource_names,
    ):
        self.calls.append(
            (
                "start",
                question_id,
                version,
                dict(zip(init_param_names, init_param_values)),
                list(cached_resource_names),
            )
        )
        if "start" in self._fail:
            raise self._fail.pop("start")
        handle = f"session-{next(self._handles)}"
        self.live.add(handle)
        self._steps[handle] = 0
        fields = {
            "markup": f"<p>{question_id} step 0 %%IDPREFIX%%</p>",
            "session_handle": handle,
            "progress_text": "You have 3 tries",
        }
        fields.update(self.start_response)
        return StartReturn(**fields)

    def process(self, session_handle, field_names, field_values):
        self.calls.append(
            ("process", session_handle, dict(zip(field_names, field_values)))
        )
        if "process" in self._fail:
            raise self._fail.pop("process")
        if session_handle not in self.live:
            raise RemoteFault("nosession", f"Unknown session {session_handle}")
        self._steps[session_handle] += 1
        fields = {"markup": f"<p>step {self._steps[session_handle]}</p>"}
        if self._queued:
            fields.update(self._queued.pop(0))
        if fields.get("ended"):
            self.live.discard(session_handle)
        return ProcessReturn(**fields)

    def stop(self, session_handle):
        self.calls.append(("stop", session_handle))
        if "stop" in self._fail:
            raise self._fail.pop("stop")
        self.live.discard(session_handle)


class MemoryResourceCache:
    """Resource cache that keeps files in a dict."""

    def __init__(self):
        self.files: dict[str, bytes] = {}

    def cache_resources(self, resources):
        for r in resources:
            self.cache_file(r.filename, r.mime_type, r.content)

    def cache_file(self, filename, mime_type, content):
        self.files[filename] = content.encode() if isinstance(content, str) else content

    def stylesheet_filename(self, session_handle):
        return f"__styles_{session_handle}.css"

    def file_url(self, filename):
        return f"http://res.test/{filename}"

    def file_in_cache(self, filename):
        return filename in self.files

    def list_cached_resources(self):
        return sorted(n for n in self.files if not n.startswith("__styles_"))


def make_first_step(seed=42, user="7", language="en", behaviour="interactive"):
    return Step(
        behaviour_vars={
            "_randomseed": seed,
            "_userid": user,
            "_language": language,
            "_preferredbehaviour": behaviour,
        }
    )


def make_answer(value, action="omact_gen_14"):
    return Step(qt_vars={"omval_response1": value, action: "Check"})


@pytest.fixture
def engine():
    return EngineDefinition(
        engine_id="om", name="OpenMark", url="http://engine.test/rpc",
        passkey_salt="salt", timeout=5,
    )


@pytest.fixture
def client():
    return FakeEngineClient()


@pytest.fixture
def registry(engine, client):
    return EngineRegistry(
        [engine],
        client_factory=lambda _: client,
        question_base_url="http://questions.test",
    )


@pytest.fixture
def session():
    """A host-owned session mapping, shared across cache scopes."""
    return {}


@pytest.fixture
def resources():
    return MemoryResourceCache()


@pytest.fixture
def new_scope(session, registry):
    """Construct a fresh cache scope over the same session, as a new request would."""

    def _new_scope():
        return CacheStore(session, registry, idle_threshold=2)

    return _new_scope


@pytest.fixture
def make_synchronizer(new_scope, resources):
    def _make(store=None, **kwargs):
        return StateSynchronizer(
            store or new_scope(),
            resource_cache_factory=lambda state: resources,
            replay_margin_seconds=30,
            **kwargs,
        )

    return _make


@pytest.fixture
def question():
    return QuestionRef(
        question_id="101", engine_id="om", remote_id="mu120.m5.q01", remote_version="1.2"
    )


@pytest.fixture
def first_step():
    return make_first_step()


@pytest.fixture
def identity(question, first_step):
    return AttemptIdentity.from_first_step(question, first_step, field_prefix="q1:")


@pytest.fixture
def file_resources(tmp_path):
    return FileResourceCache(
        "om", "mu120.m5.q01", "1.2",
        base_dir=str(tmp_path), base_url="http://res.test/files/",
    )
