import pytest

from docflow.domain.errors import SafetyViolationError
from docflow.domain.storage_paths import (
    ensure_session_scoped,
    original_path,
    page_path,
    processed_path,
    session_prefix,
)


def test_paths_live_under_session_prefix() -> None:
    prefix = session_prefix("42", "abc")
    assert prefix == "users/42/sessions/abc/"
    assert original_path(prefix, "1234_a.pdf") == "users/42/sessions/abc/originals/1234_a.pdf"
    assert page_path(prefix, "1234_a", 2) == "users/42/sessions/abc/pages/1234_a_page_2.pdf"
    assert processed_path(prefix, "x.pdf") == "users/42/sessions/abc/processed/x.pdf"


def test_ensure_session_scoped_accepts_session_folder() -> None:
    assert ensure_session_scoped("abc", "users/42/sessions/abc/") == "users/42/sessions/abc/"


@pytest.mark.parametrize(
    ("session_id", "prefix"),
    [
        ("abc", ""),
        ("abc", None),
        ("", "users/42/sessions/abc/"),
        ("abc", "users/42/sessions/other/"),
        ("abc", "users/42/"),
        ("abc", "users/42/sessions/abc"),
    ],
)
def test_ensure_session_scoped_rejects_unsafe_prefixes(session_id, prefix) -> None:
    with pytest.raises(SafetyViolationError):
        ensure_session_scoped(session_id, prefix)
