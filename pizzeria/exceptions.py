"""
Domain Exceptions

Every error the ordering core raises derives from PizzeriaError so the
HTTP layer can map the whole family in one place. The core never logs or
suppresses these; they surface to the immediate caller.
"""


class PizzeriaError(Exception):
    """Base class for all domain errors."""


class ConfigurationError(PizzeriaError):
    """Unknown size label, malformed multiplier table or invalid price input."""


class StorageError(PizzeriaError):
    """The underlying persistent store failed to read or write."""


class InvariantViolation(PizzeriaError):
    """A second cart line was about to be stored for an existing configuration."""


class NotFoundError(PizzeriaError):
    """A branch, menu item, order or cart line does not exist."""


class EmptyCartError(PizzeriaError):
    """Checkout was attempted with no lines in the branch cart."""


class InvalidTransitionError(PizzeriaError):
    """An order status change is not allowed from the current status."""
