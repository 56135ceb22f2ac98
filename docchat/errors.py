"""
Application exceptions.
Routes translate these into HTTP responses.
"""


class DocChatError(Exception):
    """Base class for all application errors."""


class UnsupportedFileTypeError(DocChatError):
    """The uploaded file's MIME type cannot be turned into text."""


class ContentExtractionError(DocChatError):
    """No usable text could be extracted from a document."""


class EmbeddingError(DocChatError):
    """The embedding service failed for a reason other than quota."""


class ProcessingTimeoutError(DocChatError):
    """Document processing did not finish before its deadline."""


def is_quota_error(exc: BaseException) -> bool:
    """
    True when an OpenAI failure means the account is out of quota.

    The API reports this as a 429 with code ``insufficient_quota``; older
    clients only carry it in the message text.
    """
    if getattr(exc, "code", None) == "insufficient_quota":
        return True
    return "quota" in str(exc).lower()
