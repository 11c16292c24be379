"""Command-line entry point."""
from careerprep.__main__ import main, parse_options, run_insights, run_history, run_interview, run_practice
from careerprep.config import Config
from careerprep.interview.testing import make_api


def _api_with_overview():
    api, http = make_api()
    http.route("GET", "/api/profile/completion", {"completionPercentage": 80, "name": "Sam"})
    http.route("GET", "/api/career-insights/history", {
        "totalCount": 1, "analyses": [{"id": 1, "sourceType": "document", "fileName": "cv.pdf"}],
    })
    return api, http


class TestCli:
    def test_parse_options(self) -> None:
        assert parse_options(["--job-title=Engineer", "--profile", "file.pdf"]) == {
            "job-title": "Engineer", "profile": None,
        }

    def test_help(self, capsys) -> None:
        assert main(["--help"]) == 0
        assert "insights" in capsys.readouterr().out

    def test_rejected_upload(self, tmp_path, capsys) -> None:
        path = tmp_path / "image.png"
        path.write_bytes(b"png")
        api, _ = _api_with_overview()
        assert run_insights(api, Config(), [str(path)]) == 1
        assert "Invalid file type" in capsys.readouterr().out

    def test_profile_insights(self, capsys) -> None:
        api, http = _api_with_overview()
        http.route("GET", "/api/career-suggestions", {"suggestions": {"paragraphs": ["Try analytics."]}})
        assert run_insights(api, Config(), ["--profile"]) == 0
        assert "Try analytics." in capsys.readouterr().out

    def test_history(self, capsys) -> None:
        api, _ = _api_with_overview()
        assert run_history(api, Config()) == 0
        assert "cv.pdf" in capsys.readouterr().out

    def test_practice_requires_job_title(self, capsys) -> None:
        api, _ = make_api()
        assert run_practice(api, Config(), []) == 2
        assert "--job-title" in capsys.readouterr().out

    def test_interview_types(self, capsys) -> None:
        api, http = make_api()
        http.route("GET", "/api/interview/types", {"interviewTypes": [
            {"type": "personal", "title": "Personal Interview", "completed": True},
            {"type": "professional", "title": "Professional Interview"},
        ]})
        assert run_interview(api, Config(), ["--types"]) == 0
        out = capsys.readouterr().out
        assert "✅ personal" in out
        assert "⬜ professional" in out

    def test_practice_normalizes_language(self, monkeypatch, capsys) -> None:
        api, http = make_api()
        http.route("POST", "/api/practice-interview/start", {
            "sessionId": 3, "questions": [{"question": "Why this role?"}],
        })
        http.route("POST", "/api/practice-interview/complete", {
            "success": True, "feedback": {"overallScore": 8, "summary": "Good"},
        })
        monkeypatch.setattr("builtins.input", lambda prompt="": "Because I like data")

        assert run_practice(api, Config(), ["--job-title=Analyst", "--language=AR"]) == 0

        assert http.calls_to("POST", "/api/practice-interview/start")[0].json["language"] == "arabic"
        assert "Overall score: 8" in capsys.readouterr().out
