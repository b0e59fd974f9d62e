"""Exception hierarchy for procwarden."""


class ProcwardenError(Exception):
    """Base for all procwarden errors."""


class ToolUnavailableError(ProcwardenError):
    """The OS introspection tool is missing or returned unusable output."""


class InvalidSignalError(ProcwardenError, ValueError):
    """A signal name outside the supported set was requested."""
