# assessment/errors.py

import secrets
import string
from typing import Optional

_ERROR_ID_ALPHABET = string.ascii_uppercase + string.digits


def generate_error_id() -> str:
    """Short opaque identifier handed to the user for support correlation."""
    return "ERR-" + "".join(secrets.choice(_ERROR_ID_ALPHABET) for _ in range(6))


class AssessmentError(Exception):
    """
    Base of every failure the pipeline surfaces to the HTTP boundary.

    - kind: stable machine-readable name
    - retryable: whether the end user should be offered an immediate retry
    - status_code: HTTP status used by the boundary
    - public_message: text safe to show to the end user
    """

    kind = "AssessmentError"
    retryable = True
    status_code = 500
    public_message = "Unable to process the request. Please try again in a moment."

    def __init__(self, detail: str = "", *, public_message: Optional[str] = None):
        super().__init__(detail or self.public_message)
        self.detail = detail or self.public_message
        if public_message:
            self.public_message = public_message


class ServiceUnavailable(AssessmentError):
    kind = "ServiceUnavailable"
    retryable = False
    status_code = 503
    public_message = "Analysis service is currently unavailable. Please contact support for assistance."


class UpstreamError(AssessmentError):
    kind = "UpstreamError"
    status_code = 502
    public_message = "Analysis service temporarily unavailable. Please try again in a moment."

    def __init__(self, detail: str = "", *, upstream_status: Optional[int] = None, **kwargs):
        super().__init__(detail, **kwargs)
        self.upstream_status = upstream_status


class UnexpectedFormat(AssessmentError):
    kind = "UnexpectedFormat"
    status_code = 502
    public_message = "Analysis service returned unexpected format. Please try again."


class NetworkError(AssessmentError):
    kind = "NetworkError"
    status_code = 503
    public_message = "Unable to connect to analysis service. Please try again in a moment."


class ParseError(AssessmentError):
    kind = "ParseError"
    status_code = 502
    public_message = "Unable to process analysis response. Please try again."

    def __init__(self, detail: str = "", *, raw_text: str = "", cleaned_text: str = "", **kwargs):
        super().__init__(detail, **kwargs)
        self.raw_text = raw_text
        self.cleaned_text = cleaned_text


class NotFound(AssessmentError):
    kind = "NotFound"
    retryable = False
    status_code = 404
    public_message = "Results not found or expired"


class RateLimited(AssessmentError):
    kind = "RateLimited"
    status_code = 429
    public_message = "Too many requests. Please try again later."

    def __init__(self, retry_after: int, detail: str = "", **kwargs):
        super().__init__(detail, **kwargs)
        self.retry_after = retry_after


class StorageError(AssessmentError):
    kind = "StorageError"
    status_code = 500
    public_message = "Failed to access stored results. Please try again."


class SubmissionInProgress(AssessmentError):
    kind = "SubmissionInProgress"
    retryable = False
    status_code = 409
    public_message = "An analysis is already in progress for this session."
