"""
Interviewer instruction templates.

This module keeps the text sent to the realtime voice backend and the avatar
separate from the session logic, for easier maintenance and editing.
"""
from typing import Any, Dict, List, Optional

from .language import is_arabic


class InterviewPrompts:
    """Collection of all interviewer prompts."""

    @staticmethod
    def language_mandate(language: str) -> str:
        """Block pinning the whole interview to one language."""
        arabic = is_arabic(language)
        name = "ARABIC (Modern Standard Arabic)" if arabic else "ENGLISH"
        short = "Arabic" if arabic else "English"
        return f"""
CRITICAL: INTERVIEW LANGUAGE REQUIREMENT
YOU MUST conduct this ENTIRE interview in: {name}
1. Your VERY FIRST greeting message MUST be in {short}
2. ALL questions MUST be asked in {short}
3. ALL responses to the candidate MUST be in {short}
4. If the candidate responds in a different language, acknowledge it politely but continue in {short}
5. Do NOT switch languages mid-interview under any circumstances
6. The language parameter has been set to: "{language}"
        """.strip()

    @staticmethod
    def closing_rules() -> str:
        return """
CLOSING
- Once you have asked your final question and the candidate has given their final answer,
  send a closing message that explicitly states the interview has concluded, thanks them
  for their time, and wishes them luck in the hiring process.
- Never declare the interview over before the candidate has answered your last question.
- Maintain a professional, respectful tone at all times.
        """.strip()

    @staticmethod
    def question_plan(interview_type: str, questions: List[str]) -> str:
        if not questions:
            return f"Conduct a {interview_type} interview, choosing your own questions."
        numbered = "\n".join(f"{i}. {q}" for i, q in enumerate(questions, start=1))
        return f"""
INTERVIEW PLAN ({interview_type})
Ask these questions in order, one at a time, waiting for each answer:
{numbered}
        """.strip()

    @staticmethod
    def job_context(job: Dict[str, Any]) -> str:
        lines = [f"TARGET ROLE: {job.get('title') or 'target'}"]
        for key, label in (("description", "Description"), ("requirements", "Requirements"),
                           ("seniorityLevel", "Seniority"), ("industry", "Industry")):
            if job.get(key):
                lines.append(f"{label}: {job[key]}")
        for key, label in (("technicalSkills", "Technical skills"), ("softSkills", "Soft skills")):
            if job.get(key):
                lines.append(f"{label}: {', '.join(job[key])}")
        if job.get("employerQuestions"):
            lines.append("Employer questions to weave in naturally:")
            lines.extend(f"- {q}" for q in job["employerQuestions"])
        lines.append(
            f"Every question should relate to the candidate's fit for the "
            f"{job.get('title') or 'target'} role."
        )
        return "\n".join(lines)

    @staticmethod
    def greeting(interview_type: str, question_count: int, first_name: Optional[str] = None) -> str:
        """Opening line spoken by the avatar."""
        name = first_name or "candidate"
        return (
            f"Hello {name}, and welcome to your {interview_type} interview. "
            f"I'll be your AI interviewer today.\n\n"
            f"I'll be asking you {question_count} structured questions to help us understand you better. "
            f"The interview should take about 15-20 minutes.\n\n"
            f"Please speak naturally and take your time with your responses. "
            f"I'm ready to begin whenever you are.\n\n"
            f"Let's start with our first question."
        )


def build_instructions(interview_type: str = "general",
                       questions: Optional[List[str]] = None,
                       language: str = "english",
                       job_context: Optional[Dict[str, Any]] = None,
                       welcome_message: Optional[str] = None,
                       custom_prompt: Optional[str] = None) -> str:
    """Assemble the full interviewer instructions for one session."""
    sections = [
        "You are a professional behavioral and technical interviewer for a hiring platform.",
        InterviewPrompts.language_mandate(language),
        InterviewPrompts.question_plan(interview_type, list(questions or [])),
    ]
    if welcome_message:
        sections.append(f"Open the interview with this welcome message:\n{welcome_message}")
    if job_context:
        sections.append(InterviewPrompts.job_context(job_context))
    sections.append(InterviewPrompts.closing_rules())
    if custom_prompt:
        sections.append(f"ADDITIONAL INTERVIEWER INSTRUCTIONS\n{custom_prompt}")
    sections.append(
        f"REMINDER: You are conducting this interview in "
        f"{'ARABIC' if is_arabic(language) else 'ENGLISH'}. Do not deviate from this language choice."
    )
    return "\n\n".join(sections)
