from __future__ import annotations


class DrawError(ValueError):
    """Base class for failures surfaced verbatim to the operator.

    ``code`` is the name reported on the wire and ``status_code`` the HTTP
    status the API answers with. Raising any of these leaves the stored
    state untouched.
    """

    code = "DrawError"
    status_code = 400


class InvalidStateError(DrawError):
    code = "ValidationError"
    status_code = 400


class ExtraModeDisabled(InvalidStateError):
    pass


class InvalidPrize(DrawError):
    code = "InvalidPrize"
    status_code = 400


class NoCandidates(DrawError):
    code = "NoCandidates"
    status_code = 409


class Exhausted(DrawError):
    code = "Exhausted"
    status_code = 409


class ConfirmationRequired(DrawError):
    code = "ConfirmationRequired"
    status_code = 409


class StorageFailure(DrawError):
    code = "StorageFailure"
    status_code = 503


class Unauthenticated(DrawError):
    code = "Unauthenticated"
    status_code = 401
