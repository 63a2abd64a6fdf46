from __future__ import annotations

from pathlib import PurePosixPath

from .errors import SafetyViolationError

ORIGINALS_FOLDER = "originals"
PAGES_FOLDER = "pages"
PROCESSED_FOLDER = "processed"
EXPORTS_FOLDER = "exports"


def session_prefix(owner_id: str, session_id: str) -> str:
    """
    Return the exclusive storage namespace for a session.

    Example:
        >>> session_prefix("42", "abc")
        'users/42/sessions/abc/'
    """
    return f"users/{owner_id}/sessions/{session_id}/"


def original_path(prefix: str, unique_name: str) -> str:
    return f"{prefix}{ORIGINALS_FOLDER}/{unique_name}"


def page_path(prefix: str, stem: str, page_number: int) -> str:
    return f"{prefix}{PAGES_FOLDER}/{stem}_page_{page_number}.pdf"


def processed_path(prefix: str, filename: str) -> str:
    return f"{prefix}{PROCESSED_FOLDER}/{filename}"


def export_path(prefix: str, session_id: str, stamp: str) -> str:
    return f"{prefix}{EXPORTS_FOLDER}/session_{session_id}_{stamp}.zip"


def file_stem(file_name: str) -> str:
    return PurePosixPath(file_name).stem or "document"


def ensure_session_scoped(session_id: str, prefix: str | None) -> str:
    """
    Verify that a deletion prefix is confined to the given session.

    The prefix must be non-empty, must contain the session id and must end
    with a path separator so it cannot match sibling sessions whose ids share
    a common start.
    """
    if not session_id or not session_id.strip():
        raise SafetyViolationError("Session id is empty - refusing to delete")
    if not prefix:
        raise SafetyViolationError(
            f"Storage prefix is empty for session {session_id} - refusing to delete"
        )
    if session_id not in prefix:
        raise SafetyViolationError(
            f"Storage prefix '{prefix}' does not contain session id '{session_id}' "
            "- refusing to delete"
        )
    if not prefix.endswith("/"):
        raise SafetyViolationError(
            f"Storage prefix '{prefix}' is not a folder prefix - refusing to delete"
        )
    return prefix
