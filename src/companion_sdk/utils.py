import os
import socket
from contextlib import closing
from dataclasses import dataclass

from companion_sdk.logger import logger

LOCAL_PORT_RESERVATION_HOST = "127.0.0.1"


def pick_free_tcp_port(host: str = "127.0.0.1") -> int:
    with closing(socket.socket(socket.AF_INET, socket.SOCK_STREAM)) as s:
        s.bind((host, 0))
        return s.getsockname()[1]


@dataclass
class ServiceEndpoint:
    """Connection endpoints of a companion service instance."""

    host: str
    port: int
    scheme: str = "http"
    health_path: str = "/api/health"

    @property
    def url(self) -> str:
        return f"{self.scheme}://{self.host}:{self.port}"

    @property
    def health_url(self) -> str:
        return f"{self.url}/{self.health_path.lstrip('/')}"


def service_dir_candidates(app_root: str, dir_name: str, explicit: str | None = None) -> list[str]:
    """Ordered directories that may hold the companion service sources."""
    candidates = [] if explicit is None else [explicit]
    candidates.extend(
        os.path.normpath(os.path.join(app_root, *parts, dir_name)) for parts in ((), ("..",), ("..", ".."))
    )
    return candidates


def resolve_working_dir(candidates: list[str]) -> str | None:
    """Return the first candidate that exists as a directory.

    Logs every probed candidate when none exists.
    """
    for candidate in candidates:
        if os.path.isdir(candidate):
            return candidate

    logger.error(f"Companion service directory not found. Tried: {', '.join(candidates)}")
    return None
