# tests/test_formatting.py

from __future__ import annotations

from urllib.parse import parse_qs, urlparse

import pytest

from sailor_cli.models.task import Task
from sailor_cli.utils.formatting import format_duration, format_size, format_speed
from sailor_cli.utils.path import (
    build_magnet_link,
    find_free_port,
    safe_dir_name,
    task_output_dir,
)


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        (1024, "1.00 KB"),
        ("1024", "1.00 KB"),
        (512, "0.50 KB"),
        (1048575, "1024.00 KB"),
        (1048576, "1.00 MB"),
        (1073741823, "1024.00 MB"),
        (1073741824, "1.00 GB"),
        ("not-a-number", "N/A"),
        (None, "N/A"),
    ],
)
def test_format_size_boundaries(raw, expected) -> None:
    assert format_size(raw) == expected


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        (0, "0 B/s"),
        (1023, "1023 B/s"),
        (1024, "1.00 KB/s"),
        (1572864, "1.50 MB/s"),
        ("", "N/A"),
    ],
)
def test_format_speed(raw, expected) -> None:
    assert format_speed(raw) == expected


def test_format_duration() -> None:
    assert format_duration(0) == "0s"
    assert format_duration(59.9) == "59s"
    assert format_duration(3600 + 120 + 5) == "1h 2m 5s"


def test_task_eta_uses_remaining_bytes_and_rate() -> None:
    task = Task(content_id="x", name="x", total_bytes=4096, completed_bytes=1024)
    assert task.eta == "N/A"
    task.rate_bytes = 1024
    assert task.eta == "3s"
    task.completed_bytes = 4096
    assert task.eta == "0s"


def test_safe_dir_name_replaces_spaces_and_strips_separators() -> None:
    assert safe_dir_name("Big Buck Bunny") == "Big_Buck_Bunny"
    assert "/" not in safe_dir_name("a/b c")
    assert safe_dir_name("///") == "unnamed"


def test_build_magnet_link_carries_hash_name_and_trackers() -> None:
    trackers = ["udp://one.example:80/announce", "udp://two.example:6969"]
    magnet = build_magnet_link("ABCDEF", "My File", trackers)

    assert magnet.startswith("magnet:?xt=urn:btih:ABCDEF&dn=My%20File")
    query = parse_qs(urlparse(magnet).query)
    assert query["tr"] == trackers


def test_find_free_port_returns_bindable_port() -> None:
    port = find_free_port()
    assert 0 < port < 65536


def test_output_dir_is_unique_per_content_id(tmp_path) -> None:
    first = task_output_dir(tmp_path, "Big Buck Bunny", "ABCDEF0123456789")
    second = task_output_dir(tmp_path, "Big Buck Bunny", "99999999ffffffff")

    assert first == tmp_path / "Big_Buck_Bunny_abcdef01"
    assert first != second
