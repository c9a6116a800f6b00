"""
Exception hierarchy for the bug tracker to GitHub migration tool.

Every exception carries a ``category`` so callers can decide how to react
without inspecting messages:

- ``fatal``: the run cannot continue (bad configuration, authentication,
  non-abuse API failures, network failures)
- ``retryable``: the same call may succeed later (abuse detection)
- ``data-defect``: the source data is malformed (dates, markup)
"""

from typing import Optional

FATAL = 'fatal'
RETRYABLE = 'retryable'
DATA_DEFECT = 'data-defect'


class MigrationError(Exception):
    """Base class for all migration errors."""

    category = FATAL

    @property
    def is_retryable(self) -> bool:
        return self.category == RETRYABLE


class ConfigurationError(MigrationError):
    """Raised when configuration or credential files are missing or invalid."""


class ValidationError(MigrationError):
    """Raised when a value fails validation."""


class AuthenticationError(MigrationError):
    """Raised when the GitHub API rejects our credentials."""


class NetworkError(MigrationError):
    """Raised when a remote host cannot be reached."""


class APIError(MigrationError):
    """
    Raised when the GitHub API returns an error response.

    Attributes:
        status_code: HTTP status code of the failed response, if known
    """

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class AbuseDetectionError(APIError):
    """Raised when GitHub temporarily blocks content creation."""

    category = RETRYABLE


class DataDefectError(MigrationError):
    """
    Raised when the legacy site returns markup or values we cannot parse.

    Attributes:
        bug_id: Legacy bug the defect was found in, if known
        comment_id: Legacy comment the defect was found in, if known
    """

    category = DATA_DEFECT

    def __init__(self, message: str, bug_id: Optional[int] = None, comment_id: Optional[int] = None):
        super().__init__(message)
        self.bug_id = bug_id
        self.comment_id = comment_id


class AttachmentError(MigrationError):
    """Raised when an attachment cannot be downloaded or re-uploaded."""

    def __init__(self, message: str, comment_id: Optional[int] = None):
        super().__init__(message)
        self.comment_id = comment_id
