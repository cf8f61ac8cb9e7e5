"""Error taxonomy for the forensics engine."""


class ForensicsError(Exception):
    """Base class for every error raised by the engine."""


class ValidationError(ForensicsError):
    """Malformed or zero address."""


class DecodeError(ForensicsError):
    """Call input or log data could not be decoded."""


class StorageReadError(ForensicsError):
    """A storage slot could not be read at the requested block."""


class TransportError(ForensicsError):
    """RPC or explorer request failed after all retries."""


class ConfigError(ForensicsError):
    """Configuration file could not be loaded."""
