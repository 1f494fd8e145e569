"""Error taxonomy - every failure the engine surfaces has a stable code.

Handlers in ``cavecrawl.main`` render these as ``{"error": code, "detail": ...}``
with the matching HTTP status, so the UI and the tests can branch on the
exact failure kind.
"""


class GameError(Exception):
    code = "internal"
    status_code = 500
    default_detail = "Internal error"

    def __init__(self, detail: str | None = None):
        self.detail = detail or self.default_detail
        super().__init__(self.detail)


class NotFound(GameError):
    code = "not_found"
    status_code = 404
    default_detail = "Session not found"


class Forbidden(GameError):
    code = "forbidden"
    status_code = 403
    default_detail = "Forbidden"


class InvalidState(GameError):
    code = "invalid_state"
    status_code = 409
    default_detail = "Game not in progress"


class InvalidRound(GameError):
    code = "invalid_round"
    status_code = 409
    default_detail = "Invalid round"


class InvalidInput(GameError):
    code = "invalid_input"
    status_code = 400
    default_detail = "Invalid input"


class Unauthenticated(GameError):
    code = "unauthenticated"
    status_code = 401
    default_detail = "Not authenticated"


class InvalidNonce(Unauthenticated):
    code = "invalid_nonce"
    default_detail = "Invalid or expired nonce"


class InvalidMessage(Unauthenticated):
    code = "invalid_message"
    default_detail = "Invalid sign-in message"


class SignatureVerificationFailed(Unauthenticated):
    code = "signature_verification_failed"
    default_detail = "Invalid signature"


class Internal(GameError):
    pass
