from __future__ import annotations

import os

import pytest

from disk_triage import display_path, format_human_size


@pytest.mark.parametrize(
    "num, expected",
    [
        (0, "0 B"),
        (1, "1 B"),
        (1023, "1023 B"),
        (1024, "1.00 KB"),
        (1536, "1.50 KB"),
        (1024 ** 2 - 1, "1024.00 KB"),
        (1048576, "1.00 MB"),
        (5 * 1024 ** 2 + 1024 ** 2 // 4, "5.25 MB"),
        (1024 ** 3, "1.00 GB"),
        (3 * 1024 ** 4, "3072.00 GB"),
    ],
)
def test_format_human_size(num, expected):
    assert format_human_size(num) == expected


def test_negative_sizes_render_as_zero():
    assert format_human_size(-1) == "0 B"
    assert format_human_size(-10 ** 9) == "0 B"


def test_display_path_escapes_undecodable_bytes():
    assert display_path(os.fsdecode(b"dir/bad\xff")) == "dir/bad\\xff"
    assert display_path("dir/café") == "dir/café"
