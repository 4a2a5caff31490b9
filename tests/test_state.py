"""Unit tests for steps, attempt identity and the State record."""

import dataclasses
import json

import pytest
from pydantic import ValidationError

from conftest import make_first_step
from opaquesync.engine.models import Results, Score
from opaquesync.errors import MalformedStep
from opaquesync.session.state import (
    AttemptIdentity,
    DisplayOptions,
    State,
    Step,
    options_fingerprint,
)


class TestStep:
    def test_all_data_prefixes_behaviour_vars(self):
        step = Step(qt_vars={"a": 1}, behaviour_vars={"_randomseed": 5})
        assert step.all_data() == {"a": 1, "-_randomseed": 5}

    def test_submitted_data_skips_internal_vars(self):
        step = Step(
            qt_vars={"omval_x": "1", "_order": "3,1,2"},
            behaviour_vars={"_statestring": "Not complete", "comment": "hi"},
        )
        assert step.submitted_data() == {"omval_x": "1", "-comment": "hi"}

    def test_submitted_data_keeps_radio_group(self):
        step = Step(qt_vars={"_rg": "opt2"})
        assert step.submitted_data() == {"_rg": "opt2"}

    def test_first_step_carries_identity_and_variant(self, question):
        step = Step.first(variant=3, user_id=7, language="en", preferred_behaviour="interactive")

        assert step.behaviour_vars == {
            "_randomseed": 123456789,
            "_attempt": 3,
            "_userid": 7,
            "_language": "en",
            "_preferredbehaviour": "interactive",
        }
        identity = AttemptIdentity.from_first_step(question, step)
        assert identity.random_seed == "123456789"

    def test_first_step_internal_vars_not_submitted(self):
        step = Step.first(variant=1, user_id=7, language="en", preferred_behaviour="x")
        assert step.submitted_data() == {}


class TestSameResponse:
    def test_repeated_answer_is_duplicate(self):
        previous = Step(qt_vars={"omval_response1": "12", "_order": "1"})
        pending = Step(qt_vars={"omval_response1": "12", "_order": "2"})
        assert pending.is_same_response(previous)

    def test_values_compared_as_text(self):
        previous = Step(qt_vars={"omval_response1": "12"})
        assert Step(qt_vars={"omval_response1": 12}).is_same_response(previous)

    def test_changed_answer_is_not_duplicate(self):
        previous = Step(qt_vars={"omval_response1": "12"})
        assert not Step(qt_vars={"omval_response1": "13"}).is_same_response(previous)

    def test_extra_field_is_not_duplicate(self):
        previous = Step(qt_vars={"omval_response1": "12"})
        pending = Step(qt_vars={"omval_response1": "12", "omval_response2": "x"})
        assert not pending.is_same_response(previous)

    def test_button_press_is_never_duplicate(self):
        previous = Step(qt_vars={"omval_response1": "12", "omact_gen_14": "Check"})
        pending = Step(qt_vars={"omval_response1": "12", "omact_gen_14": "Check"})
        assert pending.has_om_action()
        assert not pending.is_same_response(previous)

    def test_radio_group_counts(self):
        previous = Step(qt_vars={"_rg": "opt1"})
        assert not Step(qt_vars={"_rg": "opt2"}).is_same_response(previous)
        assert Step(qt_vars={"_rg": "opt1"}).is_same_response(previous)

    def test_no_previous_step(self):
        assert not Step(qt_vars={"omval_response1": "12"}).is_same_response(None)


class TestAttemptIdentity:
    def test_from_first_step(self, question):
        identity = AttemptIdentity.from_first_step(question, make_first_step(seed=9), "q3:")
        assert identity.random_seed == "9"
        assert identity.user_id == "7"
        assert identity.language == "en"
        assert identity.preferred_behaviour == "interactive"
        assert identity.field_prefix == "q3:"

    def test_missing_step(self, question):
        with pytest.raises(MalformedStep, match="no first step"):
            AttemptIdentity.from_first_step(question, None)

    def test_missing_seed(self, question):
        step = make_first_step()
        del step.behaviour_vars["_randomseed"]
        with pytest.raises(MalformedStep, match="_randomseed"):
            AttemptIdentity.from_first_step(question, step)

    def test_cache_key_is_stable_md5(self, identity):
        key = identity.cache_key()
        assert key == identity.cache_key()
        assert len(key) == 32
        int(key, 16)

    def test_cache_key_ignores_prefix_and_version(self, question):
        step = make_first_step()
        a = AttemptIdentity.from_first_step(question, step, "q1:")
        b = AttemptIdentity.from_first_step(
            dataclasses.replace(question, remote_version="9.9"), step, "q2:"
        )
        assert a.cache_key() == b.cache_key()

    @pytest.mark.parametrize(
        "changes",
        [
            {"seed": 43},
            {"user": "8"},
            {"language": "fr"},
            {"behaviour": "deferredfeedback"},
        ],
    )
    def test_cache_key_covers_identity(self, question, changes):
        base = AttemptIdentity.from_first_step(question, make_first_step())
        other = AttemptIdentity.from_first_step(question, make_first_step(**changes))
        assert base.cache_key() != other.cache_key()

    def test_cache_key_covers_question_id(self, question):
        step = make_first_step()
        a = AttemptIdentity.from_first_step(question, step)
        b = AttemptIdentity.from_first_step(
            dataclasses.replace(question, question_id="102"), step
        )
        assert a.cache_key() != b.cache_key()


class TestDisplayOptions:
    def test_fingerprint(self):
        options = DisplayOptions(readonly=True, marks=1, markdp=2, feedback=False)
        assert options.fingerprint() == "1|1|2|1|0|1"

    def test_none_fingerprint(self):
        assert options_fingerprint(None) == ""

    def test_init_params(self):
        params = DisplayOptions(correctness=False).to_init_params()
        assert params["display_correctness"] == 0
        assert params["display_marks"] == 2

    def test_from_dict_ignores_unknown(self):
        options = DisplayOptions.from_dict({"readonly": True, "colour": "red"})
        assert options.readonly is True


class TestState:
    def test_new_state_is_unstarted(self, identity):
        state = State.new(identity, DisplayOptions())
        assert state.cache_key == identity.cache_key()
        assert state.sequence_number == -1
        assert state.results_sequence_number == -1
        assert state.ended is False
        assert state.session_handle is None
        assert state.has_live_session is False
        assert state.options == DisplayOptions().fingerprint()
        assert state.field_prefix == "q1:"

    def test_cache_key_is_frozen(self, identity):
        state = State.new(identity, None)
        with pytest.raises(ValidationError):
            state.cache_key = "other"

    def test_record_round_trip_through_json(self, identity):
        state = State.new(identity, None)
        state.sequence_number = 2
        state.results_sequence_number = 2
        state.results = Results(scores=[Score(marks=1.5)], question_line="Q", attempts=1)
        state.session_handle = "h1"
        state.markup = "<p>x</p>"
        state.css_filename = "__styles_h1.css"
        state.progress_text = "Done"
        state.idle_age = 1

        record = json.loads(json.dumps(state.to_record()))
        restored = State.from_record(record)

        assert restored.to_record() == state.to_record()
        assert restored.results.default_axis_marks() == 1.5
        assert restored.last_modified == state.last_modified

    def test_touch_resets_idle_age(self, identity):
        state = State.new(identity, None)
        before = state.last_modified
        state.idle_age = 4
        state.touch()
        assert state.idle_age == 0
        assert state.last_modified >= before
