"""
Utilities for output directories, magnet links and local ports.
"""

import socket
from pathlib import Path
from typing import Iterable
from urllib.parse import quote, quote_plus

from pathvalidate import sanitize_filename

from sailor_cli.utils.formatting import short_id


def safe_dir_name(name: str) -> str:
    """
    Turns a torrent display name into a directory name that is valid on the
    current platform. Spaces become underscores.
    """
    cleaned = sanitize_filename(name.replace(" ", "_"), platform="auto")
    return cleaned or "unnamed"


def task_output_dir(download_dir: Path, name: str, content_id: str) -> Path:
    """
    Returns the isolated output directory of a task. The short info-hash
    suffix keeps items that share a display name apart.
    """
    return download_dir / f"{safe_dir_name(name)}_{short_id(content_id)}"


def create_dir(directory_path: Path) -> None:
    """Creates a directory if it does not already exist."""
    directory_path.mkdir(parents=True, exist_ok=True)


def build_magnet_link(info_hash: str, name: str, trackers: Iterable[str]) -> str:
    """Builds a magnet URI from an info-hash, a display name and a tracker list."""
    magnet = f"magnet:?xt=urn:btih:{info_hash}&dn={quote(name)}"
    for tracker in trackers:
        magnet += "&tr=" + quote_plus(tracker)
    return magnet


def find_free_port(host: str = "127.0.0.1") -> int:
    """
    Asks the OS for an unused TCP port on the loopback interface.

    Raises:
        OSError: If no port could be bound.
    """
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind((host, 0))
        return sock.getsockname()[1]
