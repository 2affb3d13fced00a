class LogAdvisorError(Exception):
    """Base class for errors raised by the streaming core."""


class ConfigurationError(LogAdvisorError):
    """Invalid session parameters; raised before a session is created."""


class SourceError(LogAdvisorError):
    """The upstream log source failed while opening or mid-stream."""
