import os
from dataclasses import dataclass


@dataclass(frozen=True)
class Settings:
    ytdlp_bin: str = "yt-dlp"
    chunk_size: int = 64 * 1024
    terminate_grace: float = 5.0
    host: str = "0.0.0.0"
    port: int = 8989
    log_level: str = "INFO"

    @classmethod
    def from_env(cls, environ=None):
        """Build settings from the YTDLP_* environment variables."""
        env = os.environ if environ is None else environ

        chunk_size = int(env.get("YTDLP_CHUNK_SIZE", "65536"))
        if chunk_size <= 0:
            raise ValueError(f"YTDLP_CHUNK_SIZE must be positive, got {chunk_size}")

        grace = float(env.get("YTDLP_TERMINATE_GRACE", "5"))
        if grace < 0:
            raise ValueError(f"YTDLP_TERMINATE_GRACE must not be negative, got {grace}")

        return cls(
            ytdlp_bin=env.get("YTDLP_BIN", "yt-dlp"),
            chunk_size=chunk_size,
            terminate_grace=grace,
            host=env.get("YTDLP_BRIDGE_HOST", "0.0.0.0"),
            port=int(env.get("YTDLP_BRIDGE_PORT", "8989")),
            log_level=env.get("YTDLP_BRIDGE_LOG_LEVEL", "INFO").upper(),
        )
