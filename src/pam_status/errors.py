class PamStatusError(Exception):
    """Base class for errors raised by pam-status."""


class FetchError(PamStatusError):
    """A host could not be queried for its services or scheduled tasks."""

    def __init__(self, host: str, reason: str):
        super().__init__(f"{host}: {reason}")
        self.host = host
        self.reason = reason


class RenderError(PamStatusError):
    """The status page could not be written."""


class DistributionError(PamStatusError):
    """Copying the status page to one destination failed."""

    def __init__(self, destination: str, reason: str):
        super().__init__(f"{destination}: {reason}")
        self.destination = destination
        self.reason = reason


class ConfigurationError(PamStatusError):
    """Configuration is invalid or a required interface is unavailable."""
