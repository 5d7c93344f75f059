"""Utilities to turn editor file/project paths into an activity context."""

from __future__ import annotations

import re
from pathlib import PurePath
from typing import Optional

from .models import DEFAULT_LANGUAGE, NO_PROJECT, ActivityContext

_LANGUAGE_BY_SUFFIX: dict[str, str] = {
    ".py": "python",
    ".pyi": "python",
    ".go": "go",
    ".rs": "rust",
    ".js": "javascript",
    ".mjs": "javascript",
    ".cjs": "javascript",
    ".jsx": "javascriptreact",
    ".ts": "typescript",
    ".tsx": "typescriptreact",
    ".java": "java",
    ".kt": "kotlin",
    ".c": "c",
    ".h": "c",
    ".cc": "cpp",
    ".cpp": "cpp",
    ".hpp": "cpp",
    ".cs": "csharp",
    ".rb": "ruby",
    ".php": "php",
    ".swift": "swift",
    ".sh": "shellscript",
    ".sql": "sql",
    ".md": "markdown",
    ".json": "json",
    ".yaml": "yaml",
    ".yml": "yaml",
    ".toml": "toml",
    ".html": "html",
    ".css": "css",
}

_LANGUAGE_ID_PATTERN = re.compile(r"[^a-z0-9+#.-]+")


def normalize_language(language_id: Optional[str]) -> Optional[str]:
    """Lower-case an editor language id and strip characters it should not carry."""
    if not language_id:
        return None
    normalized = _LANGUAGE_ID_PATTERN.sub("", language_id.strip().lower())
    return normalized or None


def detect_language(file_path: Optional[str]) -> str:
    if not file_path:
        return DEFAULT_LANGUAGE
    return _LANGUAGE_BY_SUFFIX.get(PurePath(file_path).suffix.lower(), DEFAULT_LANGUAGE)


def resolve_context(
    file_path: Optional[str],
    project_path: Optional[str] = None,
    language_id: Optional[str] = None,
) -> ActivityContext:
    """Build the context for a document.

    The project name is the last component of the enclosing project folder,
    or the ``no-project`` sentinel when the document sits outside any
    project. An explicit editor language id wins over suffix detection.
    """
    project_path = project_path.strip() if project_path else None
    project_name = NO_PROJECT
    if project_path:
        project_name = PurePath(project_path).name or NO_PROJECT
    language = normalize_language(language_id) or detect_language(file_path)
    return ActivityContext(
        project_name=project_name,
        project_path=project_path or None,
        file_path=file_path or None,
        language=language,
    )
