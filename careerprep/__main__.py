#!/usr/bin/env python3
"""
Main entry point for the CareerPrep client.
Allows running the package with: python -m careerprep <command>

Commands:
    insights <file>         Upload a document and print career insights
    insights --profile      Career insights from the saved profile
    history                 List saved career analyses
    interview [--type=T] [--language=L]
                            Text-mode profile interview
    interview --types       List profile interviews and which are done
    practice --job-title=T [--seniority=S] [--language=L]
                            Text-mode practice interview
"""
import sys
from typing import Dict, List, Optional

from .config import get_config
from .infrastructure.api import ApiClient
from .insights.flow import CareerInsightsFlow, InsightsResults, History, Uploading
from .interview.language import get_interview_language
from .interview.orchestrator import PracticeInterviewOrchestrator, InterviewSessionOrchestrator
from .interview.states import Question, Transcription, ResumeRequired, Results
from .notifications import Notifier
from .schemas import PracticeSetup
from .utils.logging import setup_logging

USAGE = __doc__.split("Commands:")[1]


def parse_options(args: List[str]) -> Dict[str, Optional[str]]:
    """Split ``--name=value`` and bare ``--flag`` arguments into a dict."""
    options: Dict[str, Optional[str]] = {}
    for arg in args:
        if not arg.startswith("--"):
            continue
        name, _, value = arg[2:].partition("=")
        options[name] = value or None
    return options


def print_toasts(notifier: Notifier) -> None:
    for toast in notifier.toasts:
        marker = "❌" if toast.is_destructive else "ℹ️"
        print(f"{marker} {toast.title}: {toast.description}")
    notifier.clear()


def print_suggestions(flow: CareerInsightsFlow) -> None:
    print("\n💼 Career insights\n")
    for paragraph in flow.suggestions.paragraphs:
        print(paragraph)
        print()


def run_insights(api: ApiClient, config, args: List[str]) -> int:
    notifier = Notifier()
    flow = CareerInsightsFlow(api, notifier=notifier, language=config.interview_language)
    flow.load()
    options = parse_options(args)
    files = [a for a in args if not a.startswith("--")]

    if "profile" in options:
        if not flow.phase.has_profile:
            print("❌ Complete your profile before requesting profile-based insights.")
            return 1
        flow.select_profile()
    elif files:
        flow.select_upload()
        print(f"📤 Uploading {files[0]}...")
        flow.upload(files[0])
        if isinstance(flow.phase, Uploading) and flow.phase.error:
            print(f"❌ {flow.phase.error}")
    else:
        print(f"Usage:{USAGE}")
        return 2

    print_toasts(notifier)
    if not isinstance(flow.phase, InsightsResults):
        return 1
    print_suggestions(flow)
    return 0


def run_history(api: ApiClient, config) -> int:
    notifier = Notifier()
    flow = CareerInsightsFlow(api, notifier=notifier, language=config.interview_language)
    flow.load()
    flow.view_history()
    print_toasts(notifier)
    if not isinstance(flow.phase, History):
        return 1

    analyses = flow.phase.history.analyses
    if not analyses:
        print("No saved analyses yet.")
    for entry in analyses:
        label = entry.file_name or "Profile analysis"
        print(f"#{entry.id}  {entry.created_at or '-'}  [{entry.source_type}]  {label}")
    return 0


def language_option(options: Dict[str, Optional[str]], config) -> str:
    return get_interview_language({"interviewLanguage": options.get("language")}, config.interview_language)


def run_interview_types(session: InterviewSessionOrchestrator, notifier: Notifier) -> int:
    types = session.list_types()
    print_toasts(notifier)
    for info in types:
        marker = "✅" if info.completed else "⬜"
        print(f"{marker} {info.type:<14} {info.title}")
    return 0 if types else 1


def run_interview(api: ApiClient, config, args: List[str]) -> int:
    options = parse_options(args)
    notifier = Notifier()
    with InterviewSessionOrchestrator(api, notifier=notifier, config=config) as session:
        if "types" in options:
            return run_interview_types(session, notifier)
        session.resume()
        if not isinstance(session.phase, Question):
            session.start_text(options.get("type"), language_option(options, config))
        print_toasts(notifier)

        if isinstance(session.phase, ResumeRequired):
            return 1

        while isinstance(session.phase, Question):
            print(f"\n🤖 {session.phase.question}")
            try:
                answer = input("> ")
            except EOFError:
                print("\n⏸️  Interview paused; run the command again to resume.")
                return 0
            session.answer(answer)
            print_toasts(notifier)

        if not isinstance(session.phase, Transcription):
            return 1

        print("\n📝 Your answers\n")
        for pair in session.transcript_pairs():
            print(f"Q: {pair.get('question', '')}")
            print(f"A: {pair.get('answer', '')}\n")
        session.finish()
        print_toasts(notifier)
        if session.phase.next_interview_type:
            print(f"➡️  Next interview: {session.phase.next_interview_type}")
    return 0


def run_practice(api: ApiClient, config, args: List[str]) -> int:
    options = parse_options(args)
    if not options.get("job-title"):
        print("❌ --job-title is required")
        return 2

    setup = PracticeSetup(
        job_title=options["job-title"],
        seniority_level=options.get("seniority") or "mid-level",
        language=language_option(options, config),
    )
    notifier = Notifier()
    with PracticeInterviewOrchestrator(api, notifier=notifier, config=config) as practice:
        if not practice.start(setup, voice=False):
            print_toasts(notifier)
            return 1

        for message in practice.history:
            print(f"\n🤖 {message.content}")
        while practice.current_question is not None:
            try:
                answer = input("> ")
            except EOFError:
                break
            question = practice.answer(answer)
            if question:
                print(f"\n🤖 {question}")

        print("\n⏳ Analyzing your interview...")
        practice.finish()
        print_toasts(notifier)
        if not isinstance(practice.phase, Results):
            return 1

        feedback = practice.phase.feedback
        print(f"\n🏁 Overall score: {feedback.overall_score:g}")
        print(feedback.summary)
        for item in feedback.strengths:
            print(f"  ✅ {item}")
        for item in feedback.improvements:
            print(f"  🔧 {item}")
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    """Command-line interface for the CareerPrep client."""
    argv = sys.argv[1:] if argv is None else argv

    # Load configuration from environment
    try:
        config = get_config()
    except ValueError as e:
        print(f"❌ Configuration Error: {e}")
        return 1

    if not argv or argv[0] in ("-h", "--help"):
        print(f"Usage:{USAGE}")
        return 0 if argv else 2

    setup_logging(config.log_file, config.log_level)
    api = ApiClient.from_config(config)
    command, rest = argv[0], argv[1:]

    if command == "insights":
        return run_insights(api, config, rest)
    if command == "history":
        return run_history(api, config)
    if command == "interview":
        return run_interview(api, config, rest)
    if command == "practice":
        return run_practice(api, config, rest)

    print(f"❌ Unknown command: {command}")
    print(f"Usage:{USAGE}")
    return 2


if __name__ == "__main__":
    sys.exit(main())
