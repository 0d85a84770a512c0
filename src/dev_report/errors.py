"""Exceptions raised by the report engine."""


class DevReportError(Exception):
    """Base class for dev-report errors."""


class ValidationError(DevReportError):
    """A request was rejected before any network or repository access."""


class ProviderFailure(DevReportError):
    """A repository's statistics could not be fetched."""

    def __init__(self, message: str, project_id: str = "", project_name: str = "") -> None:
        super().__init__(message)
        self.message = message
        self.project_id = project_id
        self.project_name = project_name


class StreamError(DevReportError):
    """The generation provider failed mid-stream."""
