"""Custom exceptions for the proctor service."""


class ProctorError(Exception):
    """Base exception for proctor service errors."""

    pass


class SessionNotFound(ProctorError):
    """No stored or live session for the given id."""

    pass


class SessionClosed(ProctorError):
    """The session already ended; no further input is accepted."""

    pass


class SessionBlocked(ProctorError):
    """The entry gate refused this device; the session never started."""

    pass


class SubmissionError(ProctorError):
    """Final answer submission errors."""

    pass
