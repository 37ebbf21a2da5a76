"""
Server configuration management
"""
from pathlib import Path
from typing import Optional
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """vecsum server settings"""

    # Listener
    host: str = "127.0.0.1"
    port: int = 33333
    listen_backlog: int = 5
    accept_timeout_sec: float = 0.5
    concurrent: bool = True  # thread per connection; False handles clients one by one

    # Per-connection socket timeout, None blocks indefinitely
    socket_timeout_sec: Optional[float] = None

    # Files
    clients_db: Path = Path("clients.db")
    log_file: Path = Path("server.log")
    log_level: str = "INFO"
    # 0 keeps the log strictly append-only; a positive size enables rotation
    log_max_bytes: int = 0
    log_backup_count: int = 5

    # Wire limits
    max_auth_bytes: int = 255
    max_vectors: int = 100_000
    max_vector_length: int = 10_000_000
    recv_chunk_size: int = 64 * 1024

    # Emit a progress event every N processed vectors
    progress_every: int = 10

    class Config:
        env_prefix = "VECSUM_"
        env_file = ".env"


settings = Settings()
