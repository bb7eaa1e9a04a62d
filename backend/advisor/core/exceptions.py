"""Exception hierarchy shared by collectors, services and stores."""


class AdvisorError(Exception):
    """Base class for all advisor errors."""

    pass


class ProviderNotConfiguredError(AdvisorError):
    """Raised when a collector or pricing source has no credentials for a provider."""

    def __init__(self, provider: str, message: str | None = None) -> None:
        self.provider = provider
        super().__init__(message or f"Provider '{provider}' is not configured")


class ProviderCollectionError(AdvisorError):
    """Raised when a provider returns partial or unusable data."""

    def __init__(self, provider: str, message: str) -> None:
        self.provider = provider
        super().__init__(f"{provider}: {message}")


class InvalidStatusTransitionError(AdvisorError):
    """Raised when a plan or recommendation is moved to a status it cannot reach."""

    def __init__(self, current: str, requested: str) -> None:
        self.current = current
        self.requested = requested
        super().__init__(f"Cannot transition from '{current}' to '{requested}'")


class RecordNotFoundError(AdvisorError):
    """Raised when a stored record referenced by ID does not exist."""

    pass


class UnknownMonitoringJobError(AdvisorError):
    """Raised when a scheduled job name does not match any monitoring job."""

    pass
