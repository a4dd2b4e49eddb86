"""
Error kinds raised by the ledger services.

Routers never build HTTP errors for these themselves; the handlers registered
in ``main`` translate them using ``status_code``.
"""
from typing import Any, Optional


class LedgerError(Exception):
    """Base class for all ledger failures"""

    status_code = 400
    kind = "ledger_error"

    def __init__(self, message: str, field: Optional[str] = None, entity_id: Any = None):
        super().__init__(message)
        self.message = message
        self.field = field
        self.entity_id = entity_id

    def to_dict(self) -> dict:
        body = {"detail": self.message, "error": self.kind}
        if self.field is not None:
            body["field"] = self.field
        if self.entity_id is not None:
            body["id"] = self.entity_id
        return body


class ValidationError(LedgerError):
    """Malformed or missing input"""

    status_code = 400
    kind = "validation_error"


class NotFoundError(LedgerError):
    """Referenced entity does not exist or belongs to another owner"""

    status_code = 404
    kind = "not_found"


class ConflictError(LedgerError):
    """Operation would break a ledger invariant"""

    status_code = 409
    kind = "conflict"


class TransferError(LedgerError):
    """One side of a transfer pair could not be written"""

    status_code = 500
    kind = "transfer_error"


class ParseError(LedgerError):
    """A statement row could not be interpreted"""

    status_code = 400
    kind = "parse_error"

    def __init__(self, message: str, row: int = 0, data: Optional[list] = None):
        super().__init__(message)
        self.row = row
        self.data = data or []
