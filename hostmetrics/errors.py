"""Exception hierarchy shared by the collectors, storage and query layers."""


class HostMetricsError(Exception):
    """Base class for every error raised on purpose by hostmetrics."""


class MeasurementUnavailable(HostMetricsError):
    """A MetricsSource reading could not be obtained.

    Never fatal: the sampler substitutes the reading's zero default.
    """

    def __init__(self, reading: str, reason: str = ""):
        self.reading = reading
        self.reason = reason
        super().__init__(f"{reading} unavailable" + (f": {reason}" if reason else ""))


class ClockFailure(HostMetricsError):
    """The current time could not be obtained; the cycle produces no sample."""


class StorageWriteFailure(HostMetricsError):
    """A sample row could not be appended to its partition."""

    def __init__(self, path, reason: str):
        self.path = path
        super().__init__(f"cannot append to {path}: {reason}")


class SchemaMismatch(HostMetricsError):
    """A partition's version line or header is not a known schema."""


class MalformedRecord(HostMetricsError):
    """A stored row or embedded process record failed to parse."""
