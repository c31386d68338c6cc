"""Exception hierarchy for vibescan.

Every failure that can end an analysis run derives from VibescanError and
carries a stable machine-readable ``code`` plus a ``retryable`` flag. The
orchestrator turns these into a single ``error`` event; the HTTP service maps
them to status codes.

Partial failures (a single file that cannot be fetched, malformed AI output)
are never raised: they are logged and degrade to fewer files or zero findings.
"""


class VibescanError(Exception):
    """Base class for all run-terminating errors.

    Attributes:
        message: Human readable description
        code: Stable error code sent to clients
        retryable: Whether the caller may retry the same request later
    """

    code: str = "UNEXPECTED_ERROR"
    retryable: bool = False

    def __init__(self, message: str, code: str | None = None, retryable: bool | None = None) -> None:
        self.message = message
        if code is not None:
            self.code = code
        if retryable is not None:
            self.retryable = retryable
        super().__init__(message)

    def to_dict(self) -> dict[str, str | bool]:
        """Convert to the ``error`` event payload."""
        return {
            "message": self.message,
            "code": self.code,
            "retryable": self.retryable,
        }


# =============================================================================
# Input validation
# =============================================================================


class InvalidRepositoryUrlError(VibescanError):
    """Raised when a repository URL cannot be parsed into owner/name."""

    code = "INVALID_URL"


class InvalidRequestError(VibescanError):
    """Raised when required run parameters are missing or malformed."""

    code = "INVALID_REQUEST"


# =============================================================================
# Hosting provider
# =============================================================================


class RepositoryNotFoundError(VibescanError):
    """Raised when the repository or branch does not exist."""

    code = "REPO_NOT_FOUND"


class RepositoryEmptyError(VibescanError):
    """Raised when the repository has no commits."""

    code = "REPO_EMPTY"


class AccessDeniedError(VibescanError):
    """Raised when the hosting provider refuses access.

    A rate-limited refusal is retryable; a permission refusal is not.
    """

    code = "ACCESS_DENIED"

    def __init__(self, message: str, rate_limited: bool = False) -> None:
        self.rate_limited = rate_limited
        super().__init__(
            message,
            code="GITHUB_RATE_LIMITED" if rate_limited else "ACCESS_DENIED",
            retryable=rate_limited,
        )


class PrivateRepositoryError(VibescanError):
    """Raised when a private repository is requested without a credential."""

    code = "PRIVATE_REPO"


class FileFetchError(VibescanError):
    """Raised for a single file that cannot be fetched.

    The gateway catches this per file; it never ends a run.
    """

    code = "FILE_FETCH_FAILED"


# =============================================================================
# AI service
# =============================================================================


class LLMError(VibescanError):
    """Base class for AI completion service failures."""

    code = "ANALYSIS_ERROR"


class InvalidCredentialsError(LLMError):
    """The AI service rejected the API key (HTTP 401)."""

    code = "INVALID_API_KEY"


class RateLimitedError(LLMError):
    """The AI service is rate limiting this key (HTTP 429)."""

    code = "RATE_LIMITED"
    retryable = True


class ServiceError(LLMError):
    """Any other non-success response from the AI service."""

    code = "ANALYSIS_ERROR"


# =============================================================================
# Orchestration
# =============================================================================


class ApprovalTimeoutError(VibescanError):
    """Raised when the caller does not approve or stop within the configured timeout."""

    code = "APPROVAL_TIMEOUT"


class InvalidDecisionError(VibescanError):
    """Raised when an approve/stop signal does not match the paused tier."""

    code = "INVALID_DECISION"
