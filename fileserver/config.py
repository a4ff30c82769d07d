from dataclasses import dataclass
from typing import Optional

@dataclass(frozen=True)
class Config:
    host: str = "0.0.0.0"
    port: int = 8080
    root: str = "."
    concurrency: int = 4
    context: str = "/"
    backlog: int = 128
    recv_timeout: Optional[float] = None
    accept_timeout: float = 1.0
    max_header_bytes: int = 65536
    chunk_size: int = 10_000
    confine_symlinks: bool = False
