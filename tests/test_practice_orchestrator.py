"""Standalone practice interview: Setup -> Interview -> Analysis -> Results."""
import pytest

from careerprep.errors import InvalidTransitionError
from careerprep.interview.avatar import AvatarApi, AvatarAudioSocket, AvatarInterview
from careerprep.interview.models import USER, ASSISTANT
from careerprep.interview.orchestrator import PracticeInterviewOrchestrator
from careerprep.interview.recorder import FINALIZE_PATH
from careerprep.interview.signaling import REALTIME_CREDENTIAL_PATH
from careerprep.interview.states import Setup, Interview, Results, Closed
from careerprep.interview.testing import (
    FakeEncoder, FakeMediaDevices, FakePeerFactory, FakeResponse, FakeWebSocketConnector, make_api
)
from careerprep.notifications import Notifier
from careerprep.schemas import PracticeSetup

START = "/api/practice-interview/start"
COMPLETE = "/api/practice-interview/complete"

FEEDBACK = {
    "success": True,
    "sessionId": 5,
    "feedback": {
        "overallScore": 7.5,
        "summary": "Clear and structured answers.",
        "strengths": ["Clarity"],
        "improvements": ["Quantify impact"],
        "questionFeedback": [{"questionIndex": 0, "question": "Q1", "userAnswer": "A1", "score": 8}],
    },
}


def _practice(**kwargs):
    api, http = make_api()
    http.route("POST", START, {
        "sessionId": 5,
        "interviewType": "standalone-practice",
        "questions": [{"question": "Q1"}, {"question": "Q2"}],
        "welcomeMessage": "Welcome to your practice interview.",
    })
    http.route("POST", COMPLETE, FEEDBACK)
    notifier = Notifier()
    return PracticeInterviewOrchestrator(api, notifier=notifier, **kwargs), http, notifier


SETUP = PracticeSetup(job_title="Backend Engineer", seniority_level="senior", language="english")


class TestTextPractice:
    def test_full_flow(self) -> None:
        practice, http, _ = _practice()
        assert practice.start(SETUP, voice=False)
        assert isinstance(practice.phase, Interview)
        assert [m.content for m in practice.history] == ["Welcome to your practice interview.", "Q1"]
        assert http.calls[0].json == {
            "jobTitle": "Backend Engineer", "seniorityLevel": "senior", "language": "english",
        }

        assert practice.answer("A1") == "Q2"
        assert practice.answer("A2") is None
        assert practice.wait_for_completion(0)

        assert practice.finish()
        assert isinstance(practice.phase, Results)
        assert practice.phase.feedback.overall_score == 7.5
        assert practice.phase.feedback.question_feedback[0].user_answer == "A1"

        body = http.calls_to("POST", COMPLETE)[0].json
        assert body["sessionId"] == 5
        assert body["jobTitle"] == "Backend Engineer"
        assert [m["role"] for m in body["conversationHistory"]] == [
            ASSISTANT, ASSISTANT, USER, ASSISTANT, USER
        ]

    def test_reset_returns_to_setup(self) -> None:
        practice, _, _ = _practice()
        practice.start(SETUP, voice=False)
        practice.finish()
        practice.reset()
        assert isinstance(practice.phase, Setup)
        assert len(practice.history) == 0

    def test_analysis_failure_reverts_to_interview(self) -> None:
        practice, http, notifier = _practice()
        http.routes[("POST", COMPLETE)] = [FakeResponse(500, {"message": "model timeout"}), FEEDBACK]
        practice.start(SETUP, voice=False)

        assert not practice.finish()

        assert isinstance(practice.phase, Interview)
        assert practice.phase.connected is False
        assert notifier.last.title == "Analysis Failed"
        assert notifier.last.is_destructive

        assert practice.finish()
        assert isinstance(practice.phase, Results)

    def test_completion_without_session_id(self) -> None:
        practice, http, _ = _practice()
        http.routes[("POST", COMPLETE)] = [{"success": True, "feedback": {"overallScore": 6, "summary": "Solid"}}]
        practice.start(SETUP, voice=False)

        assert practice.finish()

        assert isinstance(practice.phase, Results)
        assert practice.phase.feedback.overall_score == 6

    def test_malformed_completion_is_reported(self) -> None:
        practice, http, notifier = _practice()
        http.routes[("POST", COMPLETE)] = [{"success": True, "feedback": "not an object"}]
        practice.start(SETUP, voice=False)

        assert not practice.finish()

        assert isinstance(practice.phase, Interview)
        assert notifier.last.title == "Analysis Failed"

    def test_malformed_start_payload_is_reported(self) -> None:
        practice, http, notifier = _practice()
        http.routes[("POST", START)] = [{"sessionId": "not a number", "questions": [{"question": "Q1"}]}]
        assert not practice.start(SETUP, voice=False)
        assert isinstance(practice.phase, Setup)
        assert notifier.last.title == "Failed to Start Interview"

    def test_avatar_speaks_the_questions(self) -> None:
        api, http = make_api()
        http.route("POST", START, {
            "sessionId": 5, "interviewType": "standalone-practice",
            "questions": [{"question": "Q1"}, {"question": "Q2"}],
        })
        http.route("GET", "/api/heygen/status", {"available": True})
        http.route("POST", "/api/heygen/create-session", {"success": True, "session": {"sessionId": "hs_1"}})
        http.route("POST", "/api/heygen/start-session", {"success": True})
        http.route("POST", "/api/heygen/send-task", {"success": True, "taskId": "t1"})
        http.route("POST", "/api/heygen/stop-session", {"success": True})
        avatar = AvatarInterview(AvatarApi(api), AvatarAudioSocket(connect_fn=FakeWebSocketConnector()))
        practice = PracticeInterviewOrchestrator(api, notifier=Notifier(), avatar=avatar)

        assert practice.start(SETUP, voice=False)
        practice.answer("A1")

        tasks = [c.json["text"] for c in http.calls_to("POST", "/api/heygen/send-task")]
        assert tasks[1:] == ["Q1", "Q2"]
        practice.close()
        assert len(http.calls_to("POST", "/api/heygen/stop-session")) == 1

    def test_avatar_failure_does_not_block_text_practice(self) -> None:
        api, http = make_api()
        http.route("POST", START, {"sessionId": 5, "questions": [{"question": "Q1"}]})
        http.route("GET", "/api/heygen/status", {"available": True})
        http.route("POST", "/api/heygen/create-session", {"success": True, "session": {"accessToken": "tok"}})
        notifier = Notifier()
        avatar = AvatarInterview(AvatarApi(api), AvatarAudioSocket(connect_fn=FakeWebSocketConnector()),
                                 notifier=notifier)
        practice = PracticeInterviewOrchestrator(api, notifier=notifier, avatar=avatar)

        assert practice.start(SETUP, voice=False)

        assert isinstance(practice.phase, Interview)
        assert not avatar.is_active
        assert "Connection Failed" in [t.title for t in notifier.toasts]

    def test_start_failure_stays_in_setup(self) -> None:
        practice, http, notifier = _practice()
        http.routes[("POST", START)] = [FakeResponse(500, {"message": "no questions"})]
        assert not practice.start(SETUP, voice=False)
        assert isinstance(practice.phase, Setup)
        assert notifier.last.title == "Failed to Start Interview"

    def test_invalid_transitions(self) -> None:
        practice, _, _ = _practice()
        with pytest.raises(InvalidTransitionError):
            practice.finish()
        with pytest.raises(InvalidTransitionError):
            practice.reset()


class TestVoicePractice:
    def test_voice_start_and_finish(self) -> None:
        devices, factory, encoder = FakeMediaDevices(), FakePeerFactory(), FakeEncoder(final_chunk=b"end")
        practice, http, _ = _practice(devices=devices, peer_factory=factory, encoder=encoder)
        http.route("POST", REALTIME_CREDENTIAL_PATH, {"client_secret": {"value": "ek_5"}})
        http.route("POST", f"{REALTIME_CREDENTIAL_PATH}/ek_5", FakeResponse(201, text="v=0 answer"))
        http.route("POST", "/api/interview/upload-chunk", {"success": True})
        http.route("POST", FINALIZE_PATH, {"playlistUrl": "/recordings/5/playlist.m3u8"})

        assert practice.start(SETUP)

        session_update = factory.last.channel.sent[0]["session"]
        assert "Backend Engineer" in session_update["instructions"]
        assert encoder.started
        assert encoder.mix_stream is not None

        with pytest.raises(InvalidTransitionError):
            practice.answer("typed answer")

        assert practice.finish()
        assert practice.phase.recording.success
        assert len(http.calls_to("POST", "/api/interview/upload-chunk")) == 1
        assert factory.last.closed

    def test_failed_submission_keeps_the_recording_for_retry(self) -> None:
        devices, factory, encoder = FakeMediaDevices(), FakePeerFactory(), FakeEncoder(final_chunk=b"end")
        practice, http, _ = _practice(devices=devices, peer_factory=factory, encoder=encoder)
        http.route("POST", REALTIME_CREDENTIAL_PATH, {"client_secret": {"value": "ek_5"}})
        http.route("POST", f"{REALTIME_CREDENTIAL_PATH}/ek_5", FakeResponse(201, text="v=0 answer"))
        http.route("POST", "/api/interview/upload-chunk", {"success": True})
        http.route("POST", FINALIZE_PATH, {"playlistUrl": "/recordings/5/playlist.m3u8"})
        http.routes[("POST", COMPLETE)] = [FakeResponse(500, {"message": "model timeout"}), FEEDBACK]
        practice.start(SETUP)

        assert not practice.finish()
        assert practice.phase.connected is False
        assert practice.toggle_mute() is False
        assert factory.last.closed

        assert practice.finish()
        assert practice.phase.recording.playlist_url == "/recordings/5/playlist.m3u8"
        assert len(factory.created) == 1
        assert len(http.calls_to("POST", FINALIZE_PATH)) == 1


class TestClosedPractice:
    def test_close_during_start_request_keeps_session_closed(self) -> None:
        devices, factory, encoder = FakeMediaDevices(), FakePeerFactory(), FakeEncoder()
        practice, http, _ = _practice(devices=devices, peer_factory=factory, encoder=encoder)
        started = http.routes[("POST", START)][0]

        def close_then_answer(call):
            practice.close()
            return started

        http.routes[("POST", START)] = [close_then_answer]

        assert not practice.start(SETUP)

        assert isinstance(practice.phase, Closed)
        assert devices.streams == []
        assert factory.created == []
        assert not encoder.started

    def test_close_during_voice_connect_releases_the_connection(self) -> None:
        devices, factory, encoder = FakeMediaDevices(), FakePeerFactory(), FakeEncoder()
        practice, http, _ = _practice(devices=devices, peer_factory=factory, encoder=encoder)

        def close_then_answer(call):
            practice.close()
            return FakeResponse(201, text="v=0 answer")

        http.route("POST", REALTIME_CREDENTIAL_PATH, {"client_secret": {"value": "ek_5"}})
        http.route("POST", f"{REALTIME_CREDENTIAL_PATH}/ek_5", close_then_answer)

        assert not practice.start(SETUP)

        assert isinstance(practice.phase, Closed)
        assert factory.last.closed
        assert devices.streams[0].stopped
        assert not encoder.started

    def test_closed_session_cannot_be_revived(self) -> None:
        practice, _, _ = _practice()
        practice.close()
        assert not practice._transition(Setup())
        assert isinstance(practice.phase, Closed)
        with pytest.raises(InvalidTransitionError):
            practice.start(SETUP, voice=False)
