"""Profile existence rule and background autosave."""
import threading

import pytest

from careerprep.interview.testing import FakeResponse, make_api
from careerprep.profile import ProfileApi, ProfileAutosaver, has_profile
from careerprep.schemas import ProfileCompletion

AUTOSAVE = "/api/comprehensive-profile/autosave"


class TestHasProfile:
    @pytest.mark.parametrize("percentage,name,expected", [
        (0, None, False),
        (10, None, False),
        (11, None, True),
        (0, "Sam", True),
        (50, "", True),
    ])
    def test_rule(self, percentage, name, expected) -> None:
        completion = ProfileCompletion(completion_percentage=percentage, name=name)
        assert has_profile(completion) is expected

    def test_missing_completion(self) -> None:
        assert not has_profile(None)

    def test_null_percentage_from_server(self) -> None:
        completion = ProfileCompletion.model_validate({"completionPercentage": None})
        assert completion.completion_percentage == 0


class TestProfileApi:
    def test_completion(self) -> None:
        api, http = make_api()
        http.route("GET", "/api/profile/completion", {"completionPercentage": 42, "name": "Sam"})
        completion = ProfileApi(api).completion()
        assert completion.completion_percentage == 42
        assert completion.name == "Sam"

    def test_save(self) -> None:
        api, http = make_api()
        http.route("POST", "/api/comprehensive-profile", {"completionPercentage": 60})
        assert ProfileApi(api).save({"name": "Sam"}) == {"completionPercentage": 60}
        assert http.calls[0].json == {"name": "Sam"}


class TestProfileAutosaver:
    def test_flush_saves_dirty_draft(self) -> None:
        api, http = make_api()
        http.route("POST", AUTOSAVE, {"success": True})
        saver = ProfileAutosaver(ProfileApi(api), debounce=60, interval=60)
        saver.update({"name": "Sam"})

        assert saver.flush()
        assert not saver.dirty
        assert http.calls_to("POST", AUTOSAVE)[0].json == {"name": "Sam"}
        saver.stop()

    def test_flush_without_changes_is_a_noop(self) -> None:
        api, http = make_api()
        saver = ProfileAutosaver(ProfileApi(api), debounce=60, interval=60)
        assert not saver.flush()
        assert http.calls == []

    def test_failed_save_stays_dirty(self) -> None:
        api, http = make_api()
        http.route("POST", AUTOSAVE, FakeResponse(500, {"message": "db down"}), {"success": True})
        saver = ProfileAutosaver(ProfileApi(api), debounce=60, interval=60)
        saver.update({"name": "Sam"})

        assert not saver.flush()
        assert saver.dirty
        assert saver.flush()
        assert not saver.dirty
        saver.stop()

    def test_debounce_saves_after_last_edit(self) -> None:
        api, http = make_api()
        saved = threading.Event()

        def respond(call):
            saved.set()
            return {"success": True}

        http.route("POST", AUTOSAVE, respond)
        saver = ProfileAutosaver(ProfileApi(api), debounce=0.05, interval=60)
        saver.update({"name": "S"})
        saver.update({"name": "Sam"})

        assert saved.wait(2)
        assert [c.json for c in http.calls_to("POST", AUTOSAVE)] == [{"name": "Sam"}]
        saver.stop()

    def test_interval_saves_dirty_draft(self) -> None:
        api, http = make_api()
        saved = threading.Event()
        http.route("POST", AUTOSAVE, lambda call: saved.set() or {"success": True})
        saver = ProfileAutosaver(ProfileApi(api), debounce=60, interval=0.05)
        saver.start()
        saver.update({"headline": "Engineer"})

        assert saved.wait(2)
        saver.stop()
