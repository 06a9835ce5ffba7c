"""
Configuration for the SocialX sync layer.

Uses pydantic-settings for environment variable loading (prefix SOCIALX_).
"""

from pydantic import Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Sync layer configuration loaded from environment."""

    # Content-addressed storage node
    transfer_url: str = Field(default="http://localhost:5001", description="Storage node API URL")
    gateway_url: str = Field(
        default="http://localhost:8080/ipfs/",
        description="Prefix prepended to content hashes to build public URLs",
    )
    upload_chunk_size: int = Field(default=64 * 1024, gt=0, description="Bytes per upload chunk")
    upload_timeout: float = Field(default=60.0, gt=0, description="Upload timeout seconds")

    # Event stream
    event_history_size: int = Field(default=500, ge=0, description="Events retained on the bus (0=none)")

    # Logging
    log_level: str = Field(default="INFO")
    log_format: str = Field(default="text", description="Log format (json, text)")

    model_config = {"env_prefix": "SOCIALX_"}
