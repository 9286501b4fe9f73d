from pathlib import Path

import pytest

import memochat.utils.helpers as helpers
from memochat.utils.helpers import atomic_write_text, safe_filename


def test_atomic_write_creates_parent_directories(tmp_path: Path) -> None:
    path = tmp_path / "chats" / "nested" / "chat.jsonl"

    atomic_write_text(path, "{}\n")

    assert path.read_text(encoding="utf-8") == "{}\n"


def test_failed_write_keeps_old_content_and_leaves_no_temp_file(monkeypatch, tmp_path: Path) -> None:
    path = tmp_path / "chat.jsonl"
    atomic_write_text(path, "original\n")

    def _fail(src, dst):
        raise OSError("disk full")

    monkeypatch.setattr(helpers.os, "replace", _fail)

    with pytest.raises(OSError, match="disk full"):
        atomic_write_text(path, "replacement\n")

    assert path.read_text(encoding="utf-8") == "original\n"
    assert [p.name for p in tmp_path.iterdir()] == ["chat.jsonl"]


@pytest.mark.parametrize(
    ("name", "expected"),
    [
        ("3f2a-uuid", "3f2a-uuid"),
        ("../etc/passwd", ".._etc_passwd"),
        ("a:b*c?", "a_b_c_"),
        ("   ", "_"),
    ],
)
def test_safe_filename(name: str, expected: str) -> None:
    assert safe_filename(name) == expected
