"""Exceptions."""


class NoSuchEntry(RuntimeError):
    """A keyed lookup matched no rows."""


class AuthenticationFailed(RuntimeError):
    """Failed to authenticate user with provided credentials."""


class PasswordAuthenticationFailed(AuthenticationFailed):
    """Password is not correct, or the stored digest is unusable."""


class NotActivated(RuntimeError):
    """The account exists but is deactivated."""


class AuthorizationFailed(RuntimeError):
    """User lacks the permission required by a host group."""


class ExpiredToken(RuntimeError):
    """Token exists but its validity window has passed."""


class NotProjectable(RuntimeError):
    """Account cannot be represented as a posixAccount entry."""


class InvalidEmailAddress(ValueError):
    """Email address is malformed or its domain is not accepted."""
