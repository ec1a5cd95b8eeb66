"""
Invoice enumerations.
"""

import enum


class InvoiceStatus(str, enum.Enum):
    """Invoice status enumeration."""
    DRAFT = "DRAFT"  # Created from a trip, not yet submitted
    PENDING = "PENDING"  # Submission to the fiscal service in flight
    STAMPED = "STAMPED"  # Signed document issued and stored
    ERROR = "ERROR"  # Submission failed, see last_error
    CANCELLED = "CANCELLED"  # Stamped document cancelled with the tax authority
