"""
Error taxonomy for session accounting.

All errors are local, synchronous and recoverable. Callers decide whether
to surface them to a user or ignore them.
"""


class BillingError(Exception):
    """Base class for every error raised by the billing engine."""


class ConfigError(BillingError, ValueError):
    """Raised for unknown tier ids or invalid pricing configuration."""


class MissingContext(BillingError):
    """Raised when a session cannot start without identity or tier."""


class InvalidTransition(BillingError):
    """Raised when the session state machine is driven out of order."""

    def __init__(self, operation: str, status: str):
        super().__init__(f"Cannot {operation} a session that is {status}")
        self.operation = operation
        self.status = status


class SessionAlreadyActive(BillingError):
    """Raised when starting a session while another one is running."""

    def __init__(self, session_id: str):
        super().__init__(f"Session {session_id} is already active")
        self.session_id = session_id


class InvalidSessionConfig(BillingError, ValueError):
    """Raised when a session configuration is unusable."""


class FreeTierExhausted(BillingError):
    """Raised when a free tier account has no minutes left today."""


class DuplicateLanguage(BillingError):
    """Raised when an overage language is already open in the ledger."""

    def __init__(self, language_code: str):
        super().__init__(f"Overage language already active: {language_code}")
        self.language_code = language_code


class LanguageNotFound(BillingError):
    """Raised when removing a language that is not active."""

    def __init__(self, language_code: str):
        super().__init__(f"Language not active in session: {language_code}")
        self.language_code = language_code


class LanguageLimitExceeded(BillingError):
    """Raised when a language is added beyond the limit and overage is unavailable."""


class ParticipantLimitExceeded(BillingError):
    """Raised when participant overage is disabled and the count passes the threshold."""


class TierLocked(BillingError):
    """Raised when changing tier inside a locked billing period."""
