"""
Module: exceptions.py
Description: Domain exceptions for the Push Queue API.
"""


class QueueStoreError(Exception):
    """A queue store read or write could not be completed."""


class ClaimConflictError(QueueStoreError):
    """
    A conditional write lost its race.

    Raised when an item is no longer in the state the caller observed,
    typically because an overlapping invocation claimed it first.
    """

    def __init__(self, item_id: str, operation: str):
        self.item_id = item_id
        self.operation = operation
        super().__init__(f"Conditional {operation} failed for queue item {item_id}")


class PayloadValidationError(ValueError):
    """A queue item payload cannot be turned into a downstream request."""
