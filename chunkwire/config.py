"""
Chunkwire Configuration.

Provides sensible defaults with override capability.
"""

from pydantic import BaseModel, ConfigDict
from typing import Any, Optional
import os

from .core.serialization import SerializationMode

# Largest message a browser-compatible data channel reliably delivers whole.
DEFAULT_MAX_MESSAGE_SIZE = 16300
DEFAULT_SEND_INTERVAL = 0.01  # seconds between drained chunks


class SessionConfig(BaseModel):
    """
    Configuration for a transfer session.

    Environment variables override defaults (CHUNKWIRE_* prefix); values
    passed explicitly to the constructor always win.
    """

    # Serialization
    serialization: str = SerializationMode.BINARY.value

    # Channel
    max_message_size: int = DEFAULT_MAX_MESSAGE_SIZE
    send_interval: float = DEFAULT_SEND_INTERVAL
    buffer_before_open: bool = True

    # Identity
    label: Optional[str] = None
    connection_id: Optional[str] = None

    # Logging
    log_level: str = "INFO"

    model_config = ConfigDict(arbitrary_types_allowed=True)

    def model_post_init(self, __context):
        """Apply environment variable overrides."""
        self._apply_env_overrides()

    def _apply_env_overrides(self):
        """Override unset fields from environment variables."""
        env_map = {
            "CHUNKWIRE_SERIALIZATION": ("serialization", str),
            "CHUNKWIRE_MAX_MESSAGE_SIZE": ("max_message_size", int),
            "CHUNKWIRE_SEND_INTERVAL": ("send_interval", float),
            "CHUNKWIRE_LOG_LEVEL": ("log_level", str),
        }

        for env_var, (attr, type_fn) in env_map.items():
            if attr in self.model_fields_set:
                continue
            value = os.environ.get(env_var)
            if value is not None:
                setattr(self, attr, type_fn(value))

    @property
    def mode(self) -> SerializationMode:
        """
        Parsed serialization mode.

        Raises:
            ConfigurationError: If the configured mode is unknown
        """
        return SerializationMode.parse(self.serialization)

    def to_dict(self) -> dict[str, Any]:
        """Export config to dictionary."""
        return {
            "serialization": self.serialization,
            "max_message_size": self.max_message_size,
            "send_interval": self.send_interval,
            "buffer_before_open": self.buffer_before_open,
            "label": self.label,
            "connection_id": self.connection_id,
            "log_level": self.log_level,
        }

    @classmethod
    def development(cls) -> "SessionConfig":
        """Create development config with verbose logging and a fast drain."""
        return cls(
            send_interval=0.001,
            log_level="DEBUG",
        )

    @classmethod
    def production(cls) -> "SessionConfig":
        """Create production config with strict settings."""
        return cls(
            serialization=SerializationMode.BINARY.value,
            buffer_before_open=False,
            log_level="WARNING",
        )
