"""Exception types for DORA metrics computation."""


class DoraMetricsError(Exception):
    """Base exception for all DORA metrics errors."""


class InvalidParameter(DoraMetricsError):
    """Raised when a request parameter is malformed."""


class MissingParameter(InvalidParameter):
    """Raised when a required request parameter is absent."""

    def __init__(self, *names: str):
        self.names = names
        super().__init__(f"Missing required parameter(s): {', '.join(names)}")


class InvalidGranularity(InvalidParameter):
    """Raised for a granularity outside day/week/month."""

    def __init__(self, value: object):
        self.value = value
        super().__init__(f"Invalid granularity {value!r}: expected one of day, week, month")


class StorageError(DoraMetricsError):
    """Raised when reading from or writing to the datastore fails."""


class GitHubAPIError(DoraMetricsError):
    """Error from the GitHub API during ingestion."""


class EmptyResultWarning(UserWarning):
    """No activity records matched a (owner, repo, window, kind) filter."""
