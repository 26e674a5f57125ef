"""Error taxonomy for the submission -> adjudication -> reward pipeline.

Every error carries a stable ``code`` and a user-facing ``message``.
Blueprints render them as ``{"ok": False, "code": ..., "message": ...}``.
"""

from __future__ import annotations


class ChallengeFlowError(Exception):
    status_code = 400
    code = "error"

    def __init__(self, message: str, code: str | None = None):
        super().__init__(message)
        self.message = message
        if code:
            self.code = code

    def to_dict(self) -> dict:
        return {"ok": False, "code": self.code, "message": self.message}


class ValidationError(ChallengeFlowError):
    status_code = 400
    code = "invalid"


class NotFound(ChallengeFlowError):
    status_code = 404
    code = "not_found"


class ConflictError(ChallengeFlowError):
    status_code = 409
    code = "conflict"


class AnalysisUnavailable(ChallengeFlowError):
    """One analysis source failed after retries. Never surfaced to submitters."""

    status_code = 503
    code = "analysis_unavailable"

    def __init__(self, message: str, code: str | None = None, retryable: bool = True):
        super().__init__(message, code)
        self.retryable = retryable


class InvariantViolation(ChallengeFlowError):
    """A ledger/state invariant was broken. Indicates a bug, not a user error."""

    status_code = 500
    code = "invariant_violation"
