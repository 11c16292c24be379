"""
Interview session orchestrators.

An orchestrator owns one session from start to teardown: it acquires media,
connects the realtime voice backend, records, collects the conversation and
submits it. Every transition replaces the current phase (see ``states``).
Failures are logged, raised as a toast, and the machine returns to the last
interactive phase; only misuse of the state machine raises.
"""
import time
import logging
import threading
from dataclasses import replace
from typing import Any, Callable, Dict, List, Optional

from pydantic import ValidationError

from ..config import Config
from ..errors import ApiError, CareerPrepError, InvalidTransitionError, RealtimeConnectionError
from ..infrastructure.api import ApiClient
from ..infrastructure.media.devices import MediaAcquisition, MediaStream, acquire_media
from ..infrastructure.media.interfaces import ChunkEncoder, MediaDevices, PeerConnectionFactory
from ..notifications import Notifier
from ..schemas import InterviewTypeInfo, PracticeSetup
from .avatar import AvatarInterview
from .channel import EventChannel, AUDIO_DONE
from .conversation import ConversationLog
from .events import (
    SessionEventBus, EventLogger, SessionMetrics,
    SessionStartedEvent, PhaseChangedEvent, MessageAppendedEvent, ErrorOccurredEvent
)
from .language import get_interview_language
from .models import SessionState, RecordingResult, USER, ASSISTANT
from .prompts import build_instructions
from .recorder import Recorder
from .services import (
    InterviewApi, PracticeInterviewApi, JobInterviewApi, simple_parse_transcription, format_transcript
)
from .signaling import SignalingClient, REALTIME_CREDENTIAL_PATH, JOB_INTERVIEW_CREDENTIAL_PATH
from .states import (
    Phase, Closing, Closed,
    Setup, Interview, Analysis, Results,
    Select, ResumeRequired, Question, Transcription, VoiceInterview, Processing, Completed,
    JobInterview, JobAnalysis, JobResults
)

logger = logging.getLogger("orchestrator")

AudioTapFactory = Callable[[MediaStream, Callable[[Any, int], None]], Any]

# Failures an orchestrator turns into a toast instead of raising
SESSION_ERRORS = (CareerPrepError, ValidationError)


def aiortc_voice_stack(config: Optional[Config] = None) -> Dict[str, Any]:
    """
    Default media and transport implementations for voice sessions.

    aiortc is imported here rather than at module level so text-only use
    never loads the WebRTC stack.
    """
    from ..infrastructure.media.rtc import (
        AiortcMediaDevices, AiortcPeerConnection, SpeakerPlayback, SegmentedMediaEncoder, AudioTap
    )
    config = config or Config()
    return {
        "devices": AiortcMediaDevices(),
        "peer_factory": AiortcPeerConnection,
        "encoder": SegmentedMediaEncoder(workdir=config.workdir),
        "playback": SpeakerPlayback(),
        "audio_tap_factory": AudioTap,
    }


class VoiceSession:
    """
    Shared lifecycle of a realtime voice session.

    Holds at most one peer connection and one recorder. ``close()`` is the
    single teardown path and is safe to call any number of times.
    """

    initial_phase: Phase = Phase()

    def __init__(self,
                 api: ApiClient,
                 devices: Optional[MediaDevices] = None,
                 peer_factory: Optional[PeerConnectionFactory] = None,
                 encoder: Optional[ChunkEncoder] = None,
                 notifier: Optional[Notifier] = None,
                 event_bus: Optional[SessionEventBus] = None,
                 config: Optional[Config] = None,
                 playback=None,
                 avatar: Optional[AvatarInterview] = None,
                 audio_tap_factory: Optional[AudioTapFactory] = None,
                 credential_path: str = REALTIME_CREDENTIAL_PATH):
        self.api = api
        self.config = config or Config()

        # Event system
        self.event_bus = event_bus or SessionEventBus()
        self.event_logger = EventLogger()
        self.metrics = SessionMetrics()
        self.event_bus.subscribe_all(self.event_logger.handle_event)
        self.event_bus.subscribe_all(self.metrics.handle_event)
        self.notifier = notifier or Notifier(self.event_bus)

        self.devices = devices
        self.signaling = (SignalingClient(api, peer_factory, credential_path, playback)
                          if peer_factory is not None else None)
        self.recorder = Recorder(api, encoder, event_bus=self.event_bus) if encoder is not None else None
        self.avatar = avatar
        self.audio_tap_factory = audio_tap_factory

        self.conversation = ConversationLog()
        self.channel: Optional[EventChannel] = None
        self.media: Optional[MediaAcquisition] = None
        self.session_id = "-"
        self.last_recording: Optional[RecordingResult] = None

        self._phase: Phase = self.initial_phase
        self._phase_lock = threading.RLock()
        self._completed = threading.Event()
        self._audio_tap = None

    # -- phase handling -------------------------------------------------

    @property
    def phase(self) -> Phase:
        return self._phase

    @property
    def is_closed(self) -> bool:
        return isinstance(self._phase, (Closing, Closed))

    def _transition(self, new: Phase) -> bool:
        """Replace the phase. A closing or closed session only ever moves on to ``Closed``."""
        with self._phase_lock:
            old = self._phase
            if isinstance(old, Closed) or (isinstance(old, Closing) and not isinstance(new, Closed)):
                logger.info(f"Ignoring {new.name}: session is {old.name}")
                return False
            self._phase = new
        logger.info(f"Phase {old.name} -> {new.name}")
        self.event_bus.emit(PhaseChangedEvent(self.session_id, time.time(), old.name, new.name))
        return True

    def _enter(self, new: Phase) -> bool:
        """
        Enter ``new`` at the end of a blocking call.

        If ``close()`` ran in the meantime, whatever the call opened is
        released and the session stays closed.
        """
        if self._transition(new):
            return True
        self._release_voice(finalize=False)
        return False

    def _require(self, *phase_types, action: str):
        phase = self._phase
        if not isinstance(phase, phase_types):
            raise InvalidTransitionError(phase.name, action)
        return phase

    # -- conversation ---------------------------------------------------

    @property
    def history(self):
        return self.conversation.history

    def wait_for_completion(self, timeout: Optional[float] = None) -> bool:
        """Block until the interviewer signals the end of the interview."""
        return self._completed.wait(timeout)

    def _append_message(self, role: str, content: str) -> None:
        message = self.conversation.append(role, content)
        if message is not None:
            self.event_bus.emit(MessageAppendedEvent(
                self.session_id, message.timestamp, role, content, len(self.conversation) - 1
            ))

    def _on_interview_complete(self, source: str) -> None:
        logger.info(f"Interviewer closed the interview ({source})")
        self._completed.set()

    # -- voice resources ------------------------------------------------

    def toggle_mute(self) -> bool:
        """Flip the microphone; returns True when it is live."""
        if self.media is None:
            return False
        return SignalingClient.toggle_mute(self.media.stream)

    def _connect_voice(self, session_id, instructions: str, language: str,
                       credential_params: Optional[Dict[str, Any]] = None) -> None:
        """Open media, the voice connection, the recorder and the avatar, stopping early once closed."""
        if self.signaling is None or self.devices is None:
            raise RealtimeConnectionError("Voice mode needs media devices and a peer connection factory")

        self.session_id = str(session_id)
        self.conversation.clear()
        self._completed.clear()

        self.media = acquire_media(self.devices, self.config.require_camera, self.notifier)
        if self.is_closed:
            return
        self.channel = EventChannel(
            self.conversation,
            self.signaling.send,
            event_bus=self.event_bus,
            session_id=self.session_id,
            keyword_fallback=self.config.keyword_completion_fallback,
            on_complete=self._on_interview_complete,
            on_message=self._on_realtime_event,
        )
        self.signaling.connect(self.media.stream, instructions, language, on_event=self.channel.handle,
                               credential_params=credential_params)
        if self.is_closed:
            return

        self._start_recording()
        self._start_avatar()

    def _start_recording(self) -> None:
        remote = self.signaling.remote_stream if self.signaling is not None else None
        if self.recorder is None:
            return
        if self.media is None or remote is None:
            logger.warning("Recording not started: local media or remote audio missing")
            return
        self.recorder.start_recording(self.media.stream, self.session_id, mix_audio_stream=remote)

    def _start_avatar(self) -> None:
        if self.avatar is None:
            return
        try:
            self.avatar.start()
        except SESSION_ERRORS as e:
            logger.warning(f"Continuing without avatar: {e}")
            return
        remote = self.signaling.remote_stream if self.signaling is not None else None
        if self.audio_tap_factory is None or remote is None:
            return
        try:
            self._audio_tap = self.audio_tap_factory(remote, self._forward_audio)
            self._audio_tap.start()
        except Exception as e:
            logger.warning(f"Continuing without avatar, audio tap failed: {e}")
            self._audio_tap = None
            self._safely("avatar", self.avatar.disconnect)

    def _start_text_avatar(self, interview_type: str, questions: List[str]) -> None:
        if self.avatar is None:
            return
        try:
            self.avatar.start_text(interview_type, questions)
        except SESSION_ERRORS as e:
            logger.warning(f"Continuing without avatar: {e}")

    def _avatar_say(self, text: str) -> None:
        if self.avatar is None or not self.avatar.is_active:
            return
        try:
            self.avatar.speak(text)
        except SESSION_ERRORS as e:
            logger.warning(f"Avatar could not speak: {e}")

    def _forward_audio(self, samples, sample_rate: int) -> None:
        if self.avatar is not None and self.avatar.is_active:
            self.avatar.socket.stream_audio(samples, sample_rate=sample_rate)

    def _on_realtime_event(self, event: Dict[str, Any]) -> None:
        if event.get("type") == AUDIO_DONE and self.avatar is not None and self.avatar.is_active:
            self.avatar.socket.stream_audio(b"", is_final=True)

    def _release_voice(self, finalize: bool) -> Optional[RecordingResult]:
        """
        Tear down the voice connection, recording, media and avatar.

        With ``finalize`` the recording is stopped and finalized; otherwise
        it is abandoned.
        """
        channel, self.channel = self.channel, None
        if channel is not None:
            channel.close()

        tap, self._audio_tap = self._audio_tap, None
        if tap is not None:
            self._safely("audio tap", tap.stop)

        if self.signaling is not None:
            self._safely("signaling", self.signaling.disconnect)

        recording = None
        if self.recorder is not None:
            if finalize and self.recorder.is_recording:
                recording = self.recorder.stop_recording()
                if not recording.success:
                    logger.warning(f"Recording not finalized: {recording.error}")
                self.last_recording = recording
            else:
                self.recorder.cleanup()

        media, self.media = self.media, None
        if media is not None:
            self._safely("media", media.stream.stop)

        if self.avatar is not None:
            self._safely("avatar", self.avatar.disconnect)

        return recording

    @staticmethod
    def _safely(component: str, fn: Callable[[], None]) -> None:
        try:
            fn()
        except Exception as e:
            logger.error(f"Error releasing {component}: {e}")

    # -- teardown -------------------------------------------------------

    def close(self) -> None:
        """Release everything. Calls after the first are no-ops."""
        with self._phase_lock:
            if self.is_closed:
                return
            self._transition(Closing(previous=self._phase))
        try:
            self._release_voice(finalize=False)
        finally:
            self._transition(Closed())
            logger.info(f"Session metrics: {self.metrics.get_metrics()}")

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()

    def _report_error(self, title: str, error: Exception, component: str,
                      description: Optional[str] = None) -> None:
        logger.error(f"{component} failed: {error}")
        self.event_bus.emit(ErrorOccurredEvent(
            self.session_id, time.time(), type(error).__name__, str(error), component
        ))
        if isinstance(error, ApiError) and error.is_unauthorized:
            self.notifier.error("Unauthorized", "You are logged out. Log in again and retry.")
            return
        self.notifier.error(title, description or str(error))


class PracticeInterviewOrchestrator(VoiceSession):
    """Standalone practice interview: Setup -> Interview -> Analysis -> Results."""

    initial_phase = Setup()

    def __init__(self, api: ApiClient, **kwargs):
        super().__init__(api, **kwargs)
        self.practice = PracticeInterviewApi(api)
        self._question_index = 0

    @property
    def current_question(self) -> Optional[str]:
        phase = self._phase
        if not isinstance(phase, Interview):
            return None
        questions = phase.session.questions
        if self._question_index < len(questions):
            return questions[self._question_index].question
        return None

    def start(self, setup: PracticeSetup, voice: bool = True) -> bool:
        """
        Start the interview for ``setup``.

        Returns:
            True when the interview is running, False if starting failed
        """
        self._require(Setup, action="start")
        try:
            session = self.practice.start(setup)
            if self.is_closed:
                return False
            self.session_id = str(session.session_id)
            questions = [q.question for q in session.questions]
            if voice:
                instructions = build_instructions(
                    session.interview_type, questions, setup.language,
                    job_context={"title": setup.job_title, "seniorityLevel": setup.seniority_level},
                    welcome_message=session.welcome_message,
                )
                self._connect_voice(session.session_id, instructions, setup.language)
            else:
                self.conversation.clear()
                self._completed.clear()
                if session.welcome_message:
                    self._append_message(ASSISTANT, session.welcome_message)
                first = session.first_question or (questions[0] if questions else None)
                if first:
                    self._append_message(ASSISTANT, first)
                self._start_text_avatar(session.interview_type, questions)
                if first:
                    self._avatar_say(first)
        except SESSION_ERRORS as e:
            self._report_error("Failed to Start Interview", e, "practice_start")
            self._release_voice(finalize=False)
            return False

        self._question_index = 0
        if not self._enter(Interview(setup=setup, session=session, voice=voice, connected=voice)):
            return False
        self.event_bus.emit(SessionStartedEvent(
            self.session_id, time.time(), "practice", "voice" if voice else "text"
        ))
        return True

    def answer(self, text: str) -> Optional[str]:
        """
        Record a typed answer in a text-mode practice interview.

        Returns:
            The next question, or None once every question has been answered
        """
        phase = self._require(Interview, action="answer")
        if phase.voice:
            raise InvalidTransitionError(phase.name, "answer (voice mode)")
        text = text.strip()
        if text:
            self._append_message(USER, text)
        self._question_index += 1
        question = self.current_question
        if question is None:
            self._completed.set()
            return None
        self._append_message(ASSISTANT, question)
        self._avatar_say(question)
        return question

    def finish(self) -> bool:
        """
        End the interview and request feedback.

        The connection is released before submitting. If the submission
        fails the machine returns to ``Interview`` with ``connected=False``,
        where only another ``finish()`` or ``close()`` makes sense.
        """
        phase = self._require(Interview, action="finish")
        if not self._transition(Analysis(setup=phase.setup, session=phase.session, voice=phase.voice)):
            return False
        released = self._release_voice(finalize=phase.connected)
        recording = released or self.last_recording

        try:
            completion = self.practice.complete(phase.session.session_id, list(self.history), phase.setup)
        except SESSION_ERRORS as e:
            self._report_error("Analysis Failed", e, "practice_complete",
                               "Failed to analyze your interview. Please try again.")
            self._transition(replace(phase, connected=False))
            return False

        return self._enter(Results(setup=phase.setup, feedback=completion.feedback, recording=recording))

    def reset(self) -> None:
        """Practice again with a new setup."""
        self._require(Results, action="reset")
        self.conversation.clear()
        self.session_id = "-"
        self.last_recording = None
        self._transition(Setup())


class InterviewSessionOrchestrator(VoiceSession):
    """
    Profile-building interview.

    Text mode: Select -> Question -> ... -> Transcription -> Completed.
    Voice mode: Select -> VoiceInterview -> Processing -> Completed.
    """

    initial_phase = Select()

    def __init__(self, api: ApiClient, **kwargs):
        super().__init__(api, **kwargs)
        self.interviews = InterviewApi(api)

    @property
    def state(self) -> Optional[SessionState]:
        return getattr(self._phase, "state", None)

    def resume(self) -> Phase:
        """Pick up an unfinished text interview, if the server has one."""
        self._require(Select, action="resume")
        try:
            state = self.interviews.get_session()
        except SESSION_ERRORS as e:
            self._report_error("Error", e, "session_load", "Failed to load your interview session.")
            return self._phase

        if state is not None and not state.is_complete and state.mode == "text" and state.current_question:
            self.session_id = str(state.session_id)
            self.conversation.clear()
            self._append_message(ASSISTANT, state.current_question)
            self._transition(Question(state=state, question=state.current_question))
        return self._phase

    def start_text(self, interview_type: Optional[str] = None, language: Optional[str] = None) -> bool:
        self._require(Select, ResumeRequired, action="start_text")
        language = language or self.config.interview_language
        try:
            started = self.interviews.start(interview_type, language)
        except SESSION_ERRORS as e:
            if isinstance(e, ApiError) and e.requires_resume:
                logger.info("Server requires a resume before this interview")
                self.notifier.toast("Resume Required", "Upload your resume before starting this interview.")
                self._transition(ResumeRequired(interview_type=interview_type))
                return False
            self._report_error("Error", e, "interview_start", "Failed to start interview. Please try again.")
            return False

        state = SessionState(
            session_id=started.session_id,
            questions=[q.question for q in started.questions],
            mode="text",
            interview_type=interview_type,
        )
        self.session_id = str(state.session_id)
        self.conversation.clear()
        self._completed.clear()
        if started.welcome_message:
            self._append_message(ASSISTANT, started.welcome_message)
        question = started.first_question or state.current_question or ""
        self._append_message(ASSISTANT, question)

        if not self._transition(Question(state=state, question=question)):
            return False
        self.event_bus.emit(SessionStartedEvent(self.session_id, time.time(), "profile", "text"))
        return True

    def answer(self, text: str) -> Phase:
        """
        Submit a typed answer.

        The answer to the last question moves to ``Transcription``; there is
        no way back to ``Question`` from there.
        """
        phase = self._require(Question, action="answer")
        text = text.strip()
        if not text:
            return phase

        state = phase.state
        try:
            result = self.interviews.respond(state.session_id, text, state.current_question_index)
        except SESSION_ERRORS as e:
            self._report_error("Error", e, "interview_respond", "Failed to process your response")
            return phase

        state.record_answer(phase.question, text)
        self._append_message(USER, text)

        if result.is_complete:
            state.is_complete = True
            state.generated_profile = result.profile
            self._completed.set()
            if result.all_interviews_completed:
                self.notifier.toast("All Interviews Complete!",
                                    "Your comprehensive AI profile has been generated successfully.")
            else:
                self.notifier.toast("Interview Complete", "Your answers have been saved.")
            self._transition(Transcription(state=state, result=result))
        else:
            state.current_question_index += 1
            question = result.next_question or state.current_question or ""
            self._append_message(ASSISTANT, question)
            self._transition(Question(state=state, question=question))
        return self._phase

    def transcript_pairs(self) -> List[Dict[str, Any]]:
        """
        Question/answer pairs for the finished interview.

        Uses the server parser and falls back to local pairing when it fails.
        """
        self._require(Transcription, Completed, action="transcript_pairs")
        items = self.conversation.to_payload()
        try:
            return self.interviews.parse_transcription(items)
        except SESSION_ERRORS as e:
            logger.warning(f"Transcript parsing failed, using local pairing: {e}")
            self.notifier.error("Parsing Failed", str(e))
            return simple_parse_transcription(items)

    def start_voice(self, interview_type: str, language: Optional[str] = None) -> bool:
        self._require(Select, action="start_voice")
        language = language or self.config.interview_language
        try:
            started = self.interviews.start_voice(interview_type, language)
            if self.is_closed:
                return False
            state = SessionState(
                session_id=started.session_id,
                questions=[q.question for q in started.questions],
                mode="voice",
                interview_type=interview_type,
            )
            instructions = build_instructions(interview_type, state.questions, language,
                                              welcome_message=started.welcome_message)
            self._connect_voice(started.session_id, instructions, language)
        except SESSION_ERRORS as e:
            self._report_error("Voice Interview Error", e, "voice_start")
            self._release_voice(finalize=False)
            return False

        if not self._enter(VoiceInterview(state=state, language=language)):
            return False
        self.notifier.toast("Voice Interview Started", "You can now speak naturally with the AI interviewer.")
        self.event_bus.emit(SessionStartedEvent(self.session_id, time.time(), "profile", "voice"))
        return True

    def finish(self) -> bool:
        """
        Finish the interview in either mode.

        A failed voice submission returns to ``VoiceInterview`` with
        ``connected=False``; calling ``finish()`` again resubmits.
        """
        phase = self._require(Transcription, VoiceInterview, action="finish")
        if isinstance(phase, Transcription):
            return self._transition(Completed(state=phase.state, completion=phase.result))

        state = phase.state
        if not self._transition(Processing(state=state)):
            return False
        recording = self._release_voice(finalize=phase.connected) or self.last_recording
        try:
            completion = self.interviews.complete_voice(self.conversation, state.interview_type)
        except SESSION_ERRORS as e:
            self._report_error("Error", e, "voice_complete", "Failed to process voice interview")
            self._transition(replace(phase, connected=False))
            return False

        state.is_complete = True
        state.generated_profile = completion.profile
        if not self._enter(Completed(state=state, completion=completion, recording=recording)):
            return False
        if completion.all_interviews_completed:
            self.notifier.toast("All Interviews Complete!",
                                "Your comprehensive AI profile has been generated successfully.")
        return True

    def close(self) -> None:
        """Release everything; an unfinished text interview is saved so it can be resumed."""
        phase = self._phase
        super().close()
        if isinstance(phase, Question) and not phase.state.is_complete:
            try:
                self.interviews.save_session(phase.state)
            except SESSION_ERRORS as e:
                logger.warning(f"Could not save interview progress: {e}")
            else:
                logger.info(f"Saved progress of interview {phase.state.session_id}")

    def list_types(self) -> List[InterviewTypeInfo]:
        """Profile interviews on offer and which ones are already done."""
        try:
            return self.interviews.interview_types()
        except SESSION_ERRORS as e:
            self._report_error("Error", e, "interview_types", "Failed to load interview types")
            return []


class JobInterviewOrchestrator(VoiceSession):
    """
    Voice interview for one job posting: Setup -> JobInterview -> JobAnalysis -> JobResults.

    Questions are generated from the posting, the interview language comes
    from the posting's ``interviewLanguage``, and the transcript is analyzed
    and submitted with the application.
    """

    initial_phase = Setup()

    def __init__(self, api: ApiClient, **kwargs):
        kwargs.setdefault("credential_path", JOB_INTERVIEW_CREDENTIAL_PATH)
        super().__init__(api, **kwargs)
        self.jobs = JobInterviewApi(api)

    def start(self, job: Dict[str, Any]) -> bool:
        self._require(Setup, action="start")
        language = get_interview_language(job, self.config.interview_language)
        try:
            questions = self.jobs.generate_questions(job)
            if self.is_closed:
                return False
            instructions = build_instructions("job", questions, language, job_context=job)
            self._connect_voice(
                job.get("recordId") or job.get("id") or "-", instructions, language,
                credential_params={
                    "mode": "voice",
                    "language": language,
                    "jobTitle": job.get("title") or job.get("jobTitle") or "",
                    "jobDescription": job.get("description") or job.get("jobDescription") or "",
                    "jobRequirements": job.get("requirements") or job.get("jobRequirements") or "",
                },
            )
        except SESSION_ERRORS as e:
            self._report_error("Failed to Start Interview", e, "job_start")
            self._release_voice(finalize=False)
            return False

        if not self._enter(JobInterview(job=job, questions=questions, language=language)):
            return False
        self.event_bus.emit(SessionStartedEvent(self.session_id, time.time(), "job", "voice"))
        return True

    def finish(self) -> bool:
        """
        Analyze the transcript and submit it with the application.

        On failure the machine returns to ``JobInterview`` with
        ``connected=False``; calling ``finish()`` again retries.
        """
        phase = self._require(JobInterview, action="finish")
        transcript = format_transcript(list(self.history))
        if not self._transition(JobAnalysis(job=phase.job, transcript=transcript)):
            return False
        recording = self._release_voice(finalize=phase.connected) or self.last_recording

        try:
            analysis = self.jobs.analyze(phase.job, transcript)
            submission = self.jobs.submit(phase.job, transcript, analysis)
        except SESSION_ERRORS as e:
            self._report_error("Submission Failed", e, "job_submit",
                               "Failed to submit your interview. Please try again.")
            self._transition(replace(phase, connected=False))
            return False

        if not self._enter(JobResults(job=phase.job, analysis=analysis, submission=submission,
                                      recording=recording)):
            return False
        self.notifier.toast("Interview Submitted", "Your interview was sent to the employer.")
        return True
