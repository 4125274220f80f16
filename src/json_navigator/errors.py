"""Exception types raised across the engine boundary and by local validation."""


class NavigatorError(Exception):
    """Base class for json-navigator errors."""


class EngineError(NavigatorError):
    """An engine call failed (I/O, parse error, invalid pointer, rejected write)."""


class OpenCancelledError(EngineError):
    """The engine aborted an open because it was cancelled."""


class EditValidationError(NavigatorError):
    """An edit draft cannot be written back (wrong type, bad literal)."""


class InvalidQueryError(NavigatorError):
    """A search query cannot be compiled for the selected match mode."""


class EventError(NavigatorError, ValueError):
    """An engine event payload is malformed."""
