from typing import Optional


class AppError(Exception):
    """Base app error."""


class ValidationError(AppError):
    pass


class ConflictError(ValidationError):
    """A create/update collided with a unique field (product code, mobile, ...)."""


class NotFoundError(AppError):
    pass


class StoreError(AppError):
    """The record store could not complete a call."""


class PartialFinalizeError(StoreError):
    """Invoice header was saved but not all of its line items were."""

    def __init__(self, invoice_id: str, saved: int, expected: int, unposted: Optional[list[str]] = None):
        super().__init__(
            f"Invoice {invoice_id} saved with {saved} of {expected} items. Manual reconciliation required."
        )
        self.invoice_id = invoice_id
        self.saved = saved
        self.expected = expected
        # saved line ids whose stock movement also failed
        self.unposted = list(unposted or [])


class StockPostingError(StoreError):
    """Invoice and its items were saved, but some stock movements were not posted."""

    def __init__(self, invoice_id: str, line_ids: list[str]):
        super().__init__(
            f"Invoice {invoice_id} saved; stock not posted for {len(line_ids)} line(s). Adjust stock manually."
        )
        self.invoice_id = invoice_id
        self.line_ids = list(line_ids)
