"""Client-side document validation and the upload request."""
import pytest

from careerprep.config import MAX_UPLOAD_BYTES
from careerprep.errors import UploadRejectedError
from careerprep.insights.services import CareerInsightsApi
from careerprep.insights.uploads import (
    validate_upload, validate_path, guess_mime_type, INVALID_TYPE_MESSAGE, TOO_LARGE_MESSAGE
)
from careerprep.interview.testing import make_api

DOCX = "application/vnd.openxmlformats-officedocument.wordprocessingml.document"


class TestValidateUpload:
    @pytest.mark.parametrize("name", ["cv.pdf", "cv.docx", "cv.doc", "cv.txt"])
    def test_accepted_types(self, name) -> None:
        assert validate_upload(name, 1024)

    def test_docx_mime_type_is_known(self) -> None:
        assert guess_mime_type("resume.docx") == DOCX

    def test_rejects_other_types(self) -> None:
        with pytest.raises(UploadRejectedError) as info:
            validate_upload("photo.png", 100)
        assert info.value.reason == INVALID_TYPE_MESSAGE

    def test_explicit_mime_type_wins(self) -> None:
        with pytest.raises(UploadRejectedError):
            validate_upload("cv.pdf", 100, "image/png")

    def test_rejects_files_over_ten_mib(self) -> None:
        with pytest.raises(UploadRejectedError) as info:
            validate_upload("cv.pdf", MAX_UPLOAD_BYTES + 1)
        assert info.value.reason == TOO_LARGE_MESSAGE

    def test_exactly_ten_mib_is_accepted(self) -> None:
        assert validate_upload("cv.pdf", MAX_UPLOAD_BYTES) == "application/pdf"

    def test_validate_path_uses_file_size(self, tmp_path) -> None:
        path = tmp_path / "notes.txt"
        path.write_text("hello")
        assert validate_path(str(path)) == "text/plain"


class TestUploadRequest:
    def test_invalid_type_never_reaches_the_network(self, tmp_path) -> None:
        path = tmp_path / "malware.exe"
        path.write_bytes(b"MZ")
        api, http = make_api()
        with pytest.raises(UploadRejectedError):
            CareerInsightsApi(api).upload(str(path))
        assert http.calls == []

    def test_oversized_file_never_reaches_the_network(self, tmp_path) -> None:
        path = tmp_path / "huge.pdf"
        with open(path, "wb") as f:
            f.truncate(MAX_UPLOAD_BYTES + 1)
        api, http = make_api()
        with pytest.raises(UploadRejectedError):
            CareerInsightsApi(api).upload(str(path))
        assert http.calls == []

    def test_valid_file_is_sent_as_multipart(self, tmp_path) -> None:
        path = tmp_path / "cv.txt"
        path.write_text("Experienced engineer")
        api, http = make_api()
        http.route("POST", "/api/career-insights/upload", {
            "filePath": "/uploads/cv.txt", "fileName": "cv.txt",
            "fileSize": 20, "mimeType": "text/plain",
        })

        document = CareerInsightsApi(api).upload(str(path))

        assert document.file_path == "/uploads/cv.txt"
        name, content, mime_type = http.calls[0].files["file"]
        assert (name, content, mime_type) == ("cv.txt", b"Experienced engineer", "text/plain")
