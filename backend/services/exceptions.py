"""Errors raised by the ledger and PnL services."""


class InvalidLedgerInputError(ValueError):
    """A ledger call was rejected before any state was touched.

    Raised for non-positive amounts, negative prices and blank identity
    fields. Subclasses ``ValueError`` so route handlers map it to HTTP 400
    the same way as other caller errors.
    """

    pass


class PriceUnavailableError(Exception):
    """No usable price could be obtained for an asset."""

    def __init__(self, asset_id: str, reason: str = ""):
        self.asset_id = asset_id
        self.reason = reason
        message = f"Price unavailable for {asset_id}"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)
