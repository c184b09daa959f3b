"""
Chunkwire Exceptions.

All chunkwire exceptions inherit from ChunkwireError for easy catching.
"""


class ChunkwireError(Exception):
    """Base exception for all chunkwire errors."""

    def __init__(self, message: str, code: str = "CHUNKWIRE_ERROR"):
        super().__init__(message)
        self.code = code
        self.message = message


class ConfigurationError(ChunkwireError):
    """Invalid session configuration (e.g., unknown serialization mode)."""

    def __init__(self, message: str, option: str = None):
        super().__init__(message, "CONFIGURATION_ERROR")
        self.option = option


class SerializationError(ChunkwireError):
    """A value could not be encoded, or received bytes could not be decoded."""

    def __init__(self, message: str, mode: str = None):
        super().__init__(message, "SERIALIZATION_ERROR")
        self.mode = mode


class ChunkSizeError(ChunkwireError):
    """Chunk metadata alone does not fit in the channel's message size."""

    def __init__(self, message: str, max_message_size: int = None, overhead: int = None):
        super().__init__(message, "CHUNK_SIZE_ERROR")
        self.max_message_size = max_message_size
        self.overhead = overhead


class MalformedChunkError(ChunkwireError):
    """An inbound chunk carries an invalid index, part count or layout."""

    def __init__(self, message: str, transfer_id: str = None):
        super().__init__(message, "MALFORMED_CHUNK_ERROR")
        self.transfer_id = transfer_id


class SendNotOpenError(ChunkwireError):
    """Send attempted while the session is not open."""

    def __init__(self, message: str, connection_id: str = None):
        super().__init__(message, "SEND_NOT_OPEN")
        self.connection_id = connection_id


class ChannelError(ChunkwireError):
    """The underlying data channel refused or failed a hand-off."""

    def __init__(self, message: str, label: str = None):
        super().__init__(message, "CHANNEL_ERROR")
        self.label = label
