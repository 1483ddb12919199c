"""Load Markdown/text files as indexable Resources."""

from __future__ import annotations

import hashlib
import re
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

import yaml

from ragkit.db.models import Resource

# A leading "---" block closed by "---" or "..." on its own line.
_FRONTMATTER_RE = re.compile(r"\A---[ \t]*\r?\n(.*?)\r?\n(?:---|\.\.\.)[ \t]*(?:\r?\n|\Z)", re.DOTALL)

INDEXABLE_EXTENSIONS: frozenset[str] = frozenset([".md", ".markdown", ".txt", ".rst", ".text"])


def split_frontmatter(text: str) -> tuple[dict[str, Any], str]:
    """Split a leading YAML frontmatter block from *text*.

    Returns ``({}, text)`` when there is no block, or when the block is not
    a YAML mapping (it is then treated as ordinary content).
    """
    m = _FRONTMATTER_RE.match(text)
    if not m:
        return {}, text
    try:
        data = yaml.safe_load(m.group(1))
    except yaml.YAMLError:
        return {}, text
    if data is None:
        data = {}
    if not isinstance(data, dict):
        return {}, text
    return data, text[m.end():]


def estimate_tokens(text: str) -> int:
    return max(1, len(text) // 4) if text else 0


def resource_from_path(path: Path, root: Path | None = None) -> Resource:
    """Build a Resource for *path*; the id is the path relative to *root*.

    The file is read once: its body becomes ``content`` (frontmatter
    stripped) and its sha256 becomes ``content_hash``.
    """
    raw = path.read_bytes()
    text = raw.decode("utf-8")
    frontmatter, body = split_frontmatter(text)
    base = root if root is not None else Path.cwd()
    try:
        resource_id = path.resolve().relative_to(base.resolve()).as_posix()
    except ValueError:
        resource_id = path.resolve().as_posix()
    stat = path.stat()
    return Resource(
        id=resource_id,
        file_path=str(path),
        content_hash=hashlib.sha256(raw).hexdigest(),
        frontmatter=frontmatter,
        modified_at=datetime.fromtimestamp(stat.st_mtime, tz=timezone.utc),
        size_bytes=stat.st_size,
        estimated_token_count=estimate_tokens(body),
        content=body,
    )


def collect_files(paths: list[Path]) -> list[Path]:
    """Expand directories (recursively) into indexable files, sorted and de-duplicated."""
    found: set[Path] = set()
    for p in paths:
        if p.is_dir():
            found.update(
                f for f in p.rglob("*")
                if f.is_file() and f.suffix.lower() in INDEXABLE_EXTENSIONS
                and not any(part.startswith(".") for part in f.relative_to(p).parts)
            )
        elif p.is_file():
            found.add(p)
    return sorted(found)
