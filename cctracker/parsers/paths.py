"""Derive session identity from transcript file paths.

Layout convention::

    <claude dir>/projects/<encoded-project>/<session-id>.jsonl
    <claude dir>/projects/<encoded-project>/<session-id>/subagents/<agent-id>.jsonl
"""
from __future__ import annotations

import os
from pathlib import Path

from cctracker import config

SUBAGENTS_DIRNAME = "subagents"
_PROJECT_DELIMITER = "-"


def _dir_parts(path: str | Path) -> tuple[str, ...]:
    return Path(path).parts[:-1]


def is_subagent_file(path: str | Path) -> bool:
    """True when a directory component (not the file name) is ``subagents``."""
    return SUBAGENTS_DIRNAME in _dir_parts(path)


def session_external_id(path: str | Path) -> str:
    return Path(path).stem


def parent_external_id(path: str | Path) -> str | None:
    """Return the directory name right before the last ``subagents`` component."""
    parts = _dir_parts(path)
    if SUBAGENTS_DIRNAME not in parts:
        return None
    idx = len(parts) - 1 - parts[::-1].index(SUBAGENTS_DIRNAME)
    if idx < 1:
        return None
    parent = parts[idx - 1]
    if not parent or parent == Path(path).anchor:
        return None
    return parent


def project_from_path(path: str | Path, projects_dir: str | Path | None = None) -> str | None:
    """Decode the project directory for files under the projects root.

    ``-Users-foo-bar`` becomes ``/Users/foo/bar``.
    """
    root = Path(projects_dir) if projects_dir is not None else config.CLAUDE_PROJECTS_DIR
    try:
        relative = Path(path).relative_to(root)
    except ValueError:
        return None
    if len(relative.parts) < 2:
        return None
    return relative.parts[0].replace(_PROJECT_DELIMITER, os.sep)


def subagent_dir_for(path: str | Path) -> Path:
    """Conventional sub-agent directory for a main-session transcript."""
    source = Path(path)
    return source.parent / source.stem / SUBAGENTS_DIRNAME
