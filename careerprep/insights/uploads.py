"""
Client-side checks for documents submitted for career insights.
"""
import os
import logging
import mimetypes
from typing import Optional

from ..config import ALLOWED_UPLOAD_TYPES, MAX_UPLOAD_BYTES
from ..errors import UploadRejectedError

logger = logging.getLogger("uploads")

INVALID_TYPE_MESSAGE = "Invalid file type. Please upload PDF, DOCX, DOC, or TXT files."
TOO_LARGE_MESSAGE = "File too large. Maximum size is 10MB."


def guess_mime_type(file_name: str) -> Optional[str]:
    mime_type, _ = mimetypes.guess_type(file_name)
    if mime_type is None:
        # Not every platform's mimetypes table knows .docx
        extension = os.path.splitext(file_name)[1].lower()
        for known, known_extension in ALLOWED_UPLOAD_TYPES.items():
            if known_extension == extension:
                return known
    return mime_type


def validate_upload(file_name: str, size: int, mime_type: Optional[str] = None) -> str:
    """
    Reject a document before it is sent anywhere.

    Returns:
        The MIME type the document will be uploaded with

    Raises:
        UploadRejectedError: For a type other than pdf/docx/doc/txt or a file over 10 MiB
    """
    mime_type = mime_type or guess_mime_type(file_name)
    if mime_type not in ALLOWED_UPLOAD_TYPES:
        logger.info(f"Rejected {file_name}: unsupported type {mime_type}")
        raise UploadRejectedError(INVALID_TYPE_MESSAGE, file_name)
    if size > MAX_UPLOAD_BYTES:
        logger.info(f"Rejected {file_name}: {size} bytes")
        raise UploadRejectedError(TOO_LARGE_MESSAGE, file_name)
    return mime_type


def validate_path(path: str, mime_type: Optional[str] = None) -> str:
    """``validate_upload`` for a file on disk."""
    return validate_upload(os.path.basename(path), os.path.getsize(path), mime_type)
