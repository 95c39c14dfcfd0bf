from typing import Any, List, Optional


class SafetyNetError(Exception):
    """Base class for errors raised by the missed-dose job."""


class ConfigurationError(SafetyNetError):
    """Required credentials or endpoints are missing; aborts the invocation."""

    def __init__(self, missing: List[str]):
        self.missing = list(missing)
        super().__init__(self.details)

    @property
    def details(self) -> str:
        return "Missing or invalid configuration: " + ", ".join(self.missing)


class DependencyError(SafetyNetError):
    """A storage or mail-transport call failed.

    stage: which collaborator call failed, e.g. 'fetch-schedules', 'attendance', 'send'
    status: HTTP status of the collaborator response when there was one
    body: decoded error body returned by the collaborator, if any
    """

    def __init__(self, stage: str, message: str, status: Optional[int] = None, body: Any = None):
        self.stage = stage
        self.status = status
        self.body = body
        super().__init__(message)
