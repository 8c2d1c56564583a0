class PipeError(Exception):
    """Base class for everything the session can fail with."""


class TransportError(PipeError):
    """Rendezvous link failed to send or receive. Fatal."""


class DescriptionError(PipeError):
    """Creating or applying a session description or remote candidate failed. Fatal."""


class ProtocolViolation(PipeError):
    """Control message unknown or not valid for the current phase. Ignored."""


class InputError(PipeError):
    """Local input could not be read (end-of-stream is not an error)."""


class ChannelError(PipeError):
    """Byte channel rejected a frame (closed or not yet open)."""


class ConfigError(PipeError):
    """Config file unreadable or holding the wrong types."""
