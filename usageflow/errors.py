# usageflow/errors.py
"""
Failure taxonomy for the usage pipeline.

Every error is logged where it is detected and then re-raised to the caller.
Retries belong to whatever invoked the stage.
"""

from typing import Optional


class UsageflowError(Exception):
    """Base class for all pipeline failures."""


class InvalidTriggerShape(UsageflowError):
    """Arrival event is missing the bucket or object key."""


class EmptyInputError(UsageflowError):
    """Object body was empty."""

    def __init__(self, message: str, key: Optional[str] = None):
        super().__init__(message)
        self.key = key


class NoRecordsError(UsageflowError):
    """Payload parsed but held zero readings."""

    def __init__(self, message: str, key: Optional[str] = None, record_count: int = 0):
        super().__init__(message)
        self.key = key
        self.record_count = record_count


class MalformedInputError(UsageflowError):
    """Payload could not be parsed into readings.

    line / line_number point at the first offending line of the payload
    (1-based, header included) when it is known.
    """

    def __init__(
        self,
        message: str,
        line: Optional[str] = None,
        line_number: Optional[int] = None,
        key: Optional[str] = None,
    ):
        super().__init__(message)
        self.line = line
        self.line_number = line_number
        self.key = key


class MissingConfigurationError(UsageflowError):
    """A required identifier (table, topic, bucket) is not configured."""


class StorageReadError(UsageflowError):
    """Reading from the object store or the summary table failed."""


class StorageWriteError(UsageflowError):
    """Writing to the object store or the summary table failed."""


class NotificationPublishError(UsageflowError):
    """The notification sink rejected or could not receive the event."""
