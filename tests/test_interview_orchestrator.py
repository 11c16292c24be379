"""Profile and job interview orchestration in text and voice mode."""
import pytest

from careerprep.config import Config
from careerprep.errors import InvalidTransitionError
from careerprep.interview.avatar import AvatarApi, AvatarAudioSocket, AvatarInterview
from careerprep.interview.channel import ASSISTANT_TRANSCRIPT_DONE, USER_TRANSCRIPT_DONE, INTERVIEW_COMPLETED
from careerprep.interview.events import EventType
from careerprep.interview.orchestrator import InterviewSessionOrchestrator, JobInterviewOrchestrator
from careerprep.interview.recorder import FINALIZE_PATH
from careerprep.interview.signaling import REALTIME_CREDENTIAL_PATH, JOB_INTERVIEW_CREDENTIAL_PATH
from careerprep.interview.states import (
    Select, ResumeRequired, Question, Transcription, VoiceInterview, Completed, Closed,
    Setup, JobInterview, JobResults
)
from careerprep.interview.testing import (
    FakeEncoder, FakeMediaDevices, FakePeerFactory, FakeResponse, FakeWebSocketConnector, make_api
)
from careerprep.notifications import Notifier


def _text_session():
    api, http = make_api()
    http.route("GET", "/api/interview/session", FakeResponse(200, {}))
    http.route("POST", "/api/interview/start/personal", {
        "sessionId": 11,
        "questions": ["What drives you?", {"question": "Where do you see yourself?"}],
        "firstQuestion": "What drives you?",
    })
    http.route("POST", "/api/interview/respond",
               {"isComplete": False, "nextQuestion": "Where do you see yourself?"},
               {"isComplete": True, "profile": {"summary": "Driven"},
                "allInterviewsCompleted": False, "nextInterviewType": "professional"})
    notifier = Notifier()
    return InterviewSessionOrchestrator(api, notifier=notifier), http, notifier


def _voice_session(devices=None):
    api, http = make_api()
    http.route("POST", "/api/interview/start-voice", {
        "sessionId": 21, "questions": ["Tell me about yourself", "Why this field?"],
    })
    http.route("POST", REALTIME_CREDENTIAL_PATH, {"client_secret": {"value": "ek_21"}})
    http.route("POST", f"{REALTIME_CREDENTIAL_PATH}/ek_21", FakeResponse(201, text="v=0 answer"))
    http.route("POST", FINALIZE_PATH, {"playlistUrl": "/recordings/21/playlist.m3u8"})
    http.route("POST", "/api/interview/complete-voice",
               {"success": True, "allInterviewsCompleted": True})
    notifier = Notifier()
    devices = devices or FakeMediaDevices()
    factory = FakePeerFactory()
    session = InterviewSessionOrchestrator(
        api, devices=devices, peer_factory=factory, encoder=FakeEncoder(),
        notifier=notifier, config=Config(),
    )
    return session, http, notifier, devices, factory


class TestTextInterview:
    def test_questions_then_transcription(self) -> None:
        session, http, notifier = _text_session()
        assert isinstance(session.resume(), Select)
        assert session.start_text("personal", "english")
        assert isinstance(session.phase, Question)
        assert session.phase.question == "What drives you?"

        phase = session.answer("Building useful things")
        assert isinstance(phase, Question)
        assert phase.question == "Where do you see yourself?"
        assert http.calls_to("POST", "/api/interview/respond")[0].json == {
            "sessionId": 11, "answer": "Building useful things", "questionIndex": 0,
        }

        phase = session.answer("Leading a platform team")
        assert isinstance(phase, Transcription)
        assert phase.state.is_complete
        assert notifier.last.title == "Interview Complete"

    def test_last_answer_never_returns_to_question(self) -> None:
        session, _, _ = _text_session()
        session.start_text("personal")
        session.answer("one")
        session.answer("two")
        with pytest.raises(InvalidTransitionError):
            session.answer("three")
        assert isinstance(session.phase, Transcription)

    def test_blank_answer_is_ignored(self) -> None:
        session, http, _ = _text_session()
        session.start_text("personal")
        session.answer("   ")
        assert http.calls_to("POST", "/api/interview/respond") == []

    def test_transcript_pairs_fall_back_to_local_parsing(self) -> None:
        session, http, notifier = _text_session()
        http.route("POST", "/api/interview/parse-transcription", FakeResponse(500, {"message": "AI down"}))
        session.start_text("personal")
        session.answer("one")
        session.answer("two")

        pairs = session.transcript_pairs()

        assert pairs == [
            {"question": "What drives you?", "answer": "one"},
            {"question": "Where do you see yourself?", "answer": "two"},
        ]
        assert notifier.last.title == "Parsing Failed"

    def test_finish_from_transcription(self) -> None:
        session, _, _ = _text_session()
        session.start_text("personal")
        session.answer("one")
        session.answer("two")
        assert session.finish()
        assert isinstance(session.phase, Completed)
        assert session.phase.next_interview_type == "professional"
        assert not session.phase.all_interviews_completed

    def test_resume_picks_up_unfinished_session(self) -> None:
        api, http = make_api()
        http.route("GET", "/api/interview/session", {
            "id": 5, "interviewType": "personal",
            "sessionData": {"questions": ["Q1", "Q2"], "currentQuestionIndex": 1, "mode": "text"},
        })
        session = InterviewSessionOrchestrator(api, notifier=Notifier())
        phase = session.resume()
        assert isinstance(phase, Question)
        assert phase.question == "Q2"

    def test_resume_required(self) -> None:
        api, http = make_api()
        http.route("POST", "/api/interview/start/technical",
                   FakeResponse(400, {"message": "Resume required for technical interview"}))
        notifier = Notifier()
        session = InterviewSessionOrchestrator(api, notifier=notifier)

        assert not session.start_text("technical")
        assert isinstance(session.phase, ResumeRequired)
        assert session.phase.interview_type == "technical"
        assert notifier.last.title == "Resume Required"

    def test_start_failure_stays_in_select(self) -> None:
        api, http = make_api()
        http.route("POST", "/api/interview/start", FakeResponse(500, {"message": "boom"}))
        notifier = Notifier()
        session = InterviewSessionOrchestrator(api, notifier=notifier)
        assert not session.start_text()
        assert isinstance(session.phase, Select)
        assert notifier.last.is_destructive

    def test_unauthorized_toast(self) -> None:
        api, http = make_api()
        http.route("POST", "/api/interview/start", FakeResponse(401, {"message": "Unauthorized"}))
        notifier = Notifier()
        session = InterviewSessionOrchestrator(api, notifier=notifier)
        session.start_text()
        assert notifier.last.title == "Unauthorized"


class TestVoiceInterview:
    def test_camera_denied_falls_back_to_audio_only(self) -> None:
        session, http, notifier, devices, factory = _voice_session(FakeMediaDevices(deny_camera=True))

        assert session.start_voice("personal", "english")

        assert isinstance(session.phase, VoiceInterview)
        assert session.media.audio_only
        assert devices.requests == [(True, True), (True, False)]
        titles = [t.title for t in notifier.toasts]
        assert "Camera Access Failed" in titles
        assert titles[-1] == "Voice Interview Started"
        assert factory.last.remote_answer == "v=0 answer"
        session.close()

    def test_microphone_denied_fails_start(self) -> None:
        session, http, notifier, _, factory = _voice_session(
            FakeMediaDevices(deny_camera=True, deny_microphone=True)
        )
        assert not session.start_voice("personal")
        assert isinstance(session.phase, Select)
        assert factory.created == []
        assert notifier.last.title == "Voice Interview Error"

    def test_conversation_is_submitted_with_recording(self) -> None:
        session, http, _, devices, factory = _voice_session()
        session.start_voice("personal")
        channel = factory.last.channel
        channel.receive({"type": ASSISTANT_TRANSCRIPT_DONE, "transcript": "Tell me about yourself"})
        channel.receive({"type": USER_TRANSCRIPT_DONE, "transcript": "I am a data engineer"})
        channel.receive({"type": USER_TRANSCRIPT_DONE, "transcript": "I am a data engineer"})
        channel.receive({"type": INTERVIEW_COMPLETED})
        assert session.wait_for_completion(1)
        assert len(session.history) == 2

        assert session.finish()

        assert isinstance(session.phase, Completed)
        assert session.phase.all_interviews_completed
        assert session.phase.recording.playlist_url == "/recordings/21/playlist.m3u8"
        body = http.calls_to("POST", "/api/interview/complete-voice")[0].json
        assert body == {
            "conversationHistory": [
                {"question": "Tell me about yourself", "answer": "I am a data engineer"}
            ],
            "interviewType": "personal",
        }
        assert factory.last.closed
        assert all(t.stopped for t in devices.streams[0].get_tracks())

    def test_completion_failure_reverts_to_voice_interview(self) -> None:
        session, http, notifier, _, factory = _voice_session()
        http.routes[("POST", "/api/interview/complete-voice")] = [
            FakeResponse(500, {"message": "x"}), {"success": True}
        ]
        session.start_voice("personal")
        assert not session.finish()
        assert isinstance(session.phase, VoiceInterview)
        assert session.phase.connected is False
        assert session.toggle_mute() is False
        assert notifier.last.description == "Failed to process voice interview"

        assert session.finish()
        assert isinstance(session.phase, Completed)
        assert len(factory.created) == 1

    def test_connection_failure_releases_media(self) -> None:
        session, http, notifier, devices, _ = _voice_session()
        http.routes[("POST", REALTIME_CREDENTIAL_PATH)] = [FakeResponse(500, {"message": "no key"})]

        assert not session.start_voice("personal")

        assert isinstance(session.phase, Select)
        assert devices.streams[0].stopped
        assert notifier.last.title == "Voice Interview Error"

    def test_mute_toggle(self) -> None:
        session, _, _, devices, _ = _voice_session()
        session.start_voice("personal")
        assert session.toggle_mute() is False
        assert session.toggle_mute() is True
        session.close()

    def _with_avatar(self, http, session_payload):
        http.route("GET", "/api/heygen/status", {"available": True})
        http.route("POST", "/api/heygen/create-session", {"success": True, "session": session_payload})
        http.route("POST", "/api/heygen/start-session", {"success": True})
        http.route("POST", "/api/heygen/stop-session", {"success": True})

    def test_audio_tap_failure_drops_the_avatar(self) -> None:
        session, http, _, _, _ = _voice_session()
        self._with_avatar(http, {"sessionId": "hs_1", "realtimeEndpoint": "wss://avatar.vendor/ws"})
        connector = FakeWebSocketConnector()
        session.avatar = AvatarInterview(
            AvatarApi(session.api),
            AvatarAudioSocket(connect_fn=connector, sleep=lambda _: None, ready_delay=0.01),
            ready_timeout=2,
        )

        def broken_tap(stream, on_audio):
            raise RuntimeError("no audio device")

        session.audio_tap_factory = broken_tap

        assert session.start_voice("personal")

        assert isinstance(session.phase, VoiceInterview)
        assert not session.avatar.is_active
        assert connector.sockets[0].closed
        assert len(http.calls_to("POST", "/api/heygen/stop-session")) == 1
        session.close()

    def test_malformed_avatar_session_continues_without_avatar(self) -> None:
        session, http, _, _, _ = _voice_session()
        self._with_avatar(http, {"accessToken": "tok"})
        session.avatar = AvatarInterview(AvatarApi(session.api),
                                         AvatarAudioSocket(connect_fn=FakeWebSocketConnector()))

        assert session.start_voice("personal")

        assert isinstance(session.phase, VoiceInterview)
        assert not session.avatar.is_active
        session.close()

class TestTeardown:
    def test_close_is_idempotent(self) -> None:
        session, _, _, devices, factory = _voice_session()
        closing = []
        session.event_bus.subscribe(
            EventType.PHASE_CHANGED,
            lambda e: closing.append(e) if e.data["current"] == "Closing" else None,
        )
        session.start_voice("personal")

        session.close()
        session.close()

        assert isinstance(session.phase, Closed)
        assert len(closing) == 1
        assert factory.last.closed
        assert devices.streams[0].stopped
        assert http_finalize_calls(session) == 0

    def test_context_manager_closes(self) -> None:
        session, _, _ = _text_session()
        with session:
            session.start_text("personal")
        assert session.is_closed

    def test_close_during_voice_start_keeps_session_closed(self) -> None:
        session, http, notifier, devices, factory = _voice_session()
        started = http.routes[("POST", "/api/interview/start-voice")][0]

        def close_then_answer(call):
            session.close()
            return started

        http.routes[("POST", "/api/interview/start-voice")] = [close_then_answer]

        assert not session.start_voice("personal")

        assert isinstance(session.phase, Closed)
        assert devices.streams == []
        assert factory.created == []
        assert "Voice Interview Started" not in [t.title for t in notifier.toasts]

    def test_close_saves_unfinished_text_interview(self) -> None:
        session, http, _ = _text_session()
        http.route("POST", "/api/interview/session", {"success": True})
        session.start_text("personal")

        session.close()

        body = http.calls_to("POST", "/api/interview/session")[0].json
        assert body["sessionId"] == 11
        assert body["sessionData"]["currentQuestionIndex"] == 0
        assert body["sessionData"]["isComplete"] is False

    def test_close_after_transcription_saves_nothing(self) -> None:
        session, http, _ = _text_session()
        session.start_text("personal")
        session.answer("one")
        session.answer("two")
        session.close()
        assert http.calls_to("POST", "/api/interview/session") == []


class TestInterviewTypes:
    def test_list_types(self) -> None:
        api, http = make_api()
        http.route("GET", "/api/interview/types", {"interviewTypes": [
            {"type": "personal", "title": "Personal", "completed": True},
            {"type": "technical", "title": "Technical"},
        ]})
        session = InterviewSessionOrchestrator(api, notifier=Notifier())
        types = session.list_types()
        assert [t.type for t in types] == ["personal", "technical"]
        assert types[0].completed

    def test_list_types_failure_is_reported(self) -> None:
        api, http = make_api()
        http.route("GET", "/api/interview/types", FakeResponse(500, {"message": "down"}))
        notifier = Notifier()
        session = InterviewSessionOrchestrator(api, notifier=notifier)
        assert session.list_types() == []
        assert notifier.last.description == "Failed to load interview types"


JOB = {
    "recordId": "rec_9",
    "title": "Data Analyst",
    "companyName": "Acme",
    "description": "Analyze sales data",
    "requirements": "SQL, Python",
    "interviewLanguage": "Arabic",
}


def _job_session():
    api, http = make_api()
    http.route("POST", "/api/job-interview/generate-questions", {"questions": [{"question": "Why Acme?"}, "SQL?"]})
    http.route("POST", JOB_INTERVIEW_CREDENTIAL_PATH, {"client_secret": {"value": "ek_job"}})
    http.route("POST", f"{REALTIME_CREDENTIAL_PATH}/ek_job", FakeResponse(201, text="v=0 answer"))
    http.route("POST", "/api/job-interview/analyze", {"analysis": "Strong SQL background"})
    http.route("POST", "/api/job-interview/submit", {"success": True, "applicationId": "app_1"})
    notifier = Notifier()
    factory = FakePeerFactory()
    session = JobInterviewOrchestrator(api, devices=FakeMediaDevices(), peer_factory=factory,
                                       notifier=notifier, config=Config())
    return session, http, notifier, factory


class TestJobInterview:
    def test_start_uses_posting_and_language(self) -> None:
        session, http, _, factory = _job_session()

        assert session.start(JOB)

        assert isinstance(session.phase, JobInterview)
        assert session.phase.language == "arabic"
        assert session.phase.questions == ["Why Acme?", "SQL?"]
        body = http.calls_to("POST", JOB_INTERVIEW_CREDENTIAL_PATH)[0].json
        assert body["mode"] == "voice"
        assert body["language"] == "arabic"
        assert body["jobTitle"] == "Data Analyst"
        assert body["jobRequirements"] == "SQL, Python"
        assert "Why Acme?" in factory.last.channel.sent[0]["session"]["instructions"]
        session.close()

    def test_finish_submits_transcript_and_analysis(self) -> None:
        session, http, notifier, factory = _job_session()
        session.start(JOB)
        channel = factory.last.channel
        channel.receive({"type": ASSISTANT_TRANSCRIPT_DONE, "transcript": "Why Acme?"})
        channel.receive({"type": USER_TRANSCRIPT_DONE, "transcript": "I like your data culture"})

        assert session.finish()

        assert isinstance(session.phase, JobResults)
        assert session.phase.analysis == "Strong SQL background"
        submitted = http.calls_to("POST", "/api/job-interview/submit")[0].json
        assert submitted["jobRecordId"] == "rec_9"
        assert submitted["interviewTranscript"] == "Interviewer: Why Acme?\nCandidate: I like your data culture"
        assert notifier.last.title == "Interview Submitted"
        assert factory.last.closed

    def test_submission_failure_returns_to_interview(self) -> None:
        session, http, notifier, factory = _job_session()
        http.routes[("POST", "/api/job-interview/submit")] = [
            FakeResponse(500, {"message": "airtable down"}), {"success": True}
        ]
        session.start(JOB)

        assert not session.finish()
        assert isinstance(session.phase, JobInterview)
        assert session.phase.connected is False
        assert notifier.last.title == "Submission Failed"

        assert session.finish()
        assert isinstance(session.phase, JobResults)
        assert len(factory.created) == 1

    def test_start_failure_stays_in_setup(self) -> None:
        session, http, notifier, factory = _job_session()
        http.routes[("POST", JOB_INTERVIEW_CREDENTIAL_PATH)] = [FakeResponse(500, {"message": "no key"})]
        assert not session.start(JOB)
        assert isinstance(session.phase, Setup)
        assert notifier.last.title == "Failed to Start Interview"


def http_finalize_calls(session) -> int:
    return len(session.api.session.calls_to("POST", FINALIZE_PATH))
