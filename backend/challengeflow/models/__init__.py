from .challenge import Challenge  # noqa: F401
from .participation import Participation  # noqa: F401

from .ledger_entry import LedgerEntry  # noqa: F401
from .ledger_reversal import LedgerReversal  # noqa: F401

from .review_policy import ReviewPolicy  # noqa: F401

from .notification import Notification  # noqa: F401

from .audit_log import AuditLog  # noqa: F401

from .idempotency_key import IdempotencyKey  # noqa: F401
