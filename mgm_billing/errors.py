class BillingError(Exception):
    """Base class for errors surfaced to the billing screens."""


class ValidationError(BillingError):
    """Bad input. Raised before anything is written; the user keeps their input."""


class PersistenceError(BillingError):
    """The database refused a read or write. Safe to retry with the same draft."""
