"""Domain error taxonomy shared by the billing core and the HTTP layer.

Each error carries the HTTP status it maps to so the API can translate it
without a lookup table. Renewal "successor already exists" outcomes are not
errors and never raise.
"""


class HourbankError(Exception):
    """Base class for errors raised by the portal core."""

    status_code: int = 500

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class ValidationFailed(HourbankError):
    """Input rejected before any write (bad range, missing field)."""

    status_code = 422


class NotFound(HourbankError):
    """Referenced client, contract or ticket does not exist."""

    status_code = 404


class Conflict(HourbankError):
    """Operation clashes with current state (dependents, final status)."""

    status_code = 409


class AccessDenied(HourbankError):
    """Caller may not touch data outside their own client."""

    status_code = 403
