"""Domain-specific errors for smarthub."""


class SmartHubError(Exception):
    """Base error for smarthub."""


class FrameDecodeError(SmartHubError):
    """Raised when a frame, payload or blob cannot be decoded."""


class FrameEncodeError(SmartHubError):
    """Raised when a message does not fit into a single frame."""


class ConfigValidationError(SmartHubError):
    """Raised when a config file does not conform to schema or semantics."""


class ConfigLoadError(SmartHubError):
    """Raised when reading config sources fails."""


class TransportError(SmartHubError):
    """Base transport error."""


class TransportConnectError(TransportError):
    """Raised when the server cannot be reached."""


class TransportTimeoutError(TransportError):
    """Raised when the server does not answer in time."""
