from __future__ import annotations

from pathlib import Path

import pytest


@pytest.fixture
def sample_tree(tmp_path: Path) -> Path:
    """
    root/
      a        (100 bytes)
      b/
        c      (50 bytes)
    """
    root = tmp_path / "root"
    (root / "b").mkdir(parents=True)
    (root / "a").write_bytes(b"x" * 100)
    (root / "b" / "c").write_bytes(b"y" * 50)
    return root
