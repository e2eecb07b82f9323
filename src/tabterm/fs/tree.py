"""Directory tree listing for the file drawer."""

from __future__ import annotations

import os
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field

DEFAULT_DEPTH = 3
MIN_DEPTH = 1
MAX_DEPTH = 6

EXCLUDED_NAMES = frozenset(
    {".git", "node_modules", "target", "dist", "build", ".next", ".cache"}
)


class FileTreeNode(BaseModel):
    """One file or directory. ``children`` is None when not expanded."""

    model_config = ConfigDict(populate_by_name=True)

    name: str
    path: str
    is_dir: bool = Field(alias="isDirectory")
    children: list[FileTreeNode] | None = None


class FileTreeResponse(BaseModel):
    root: FileTreeNode


def _should_skip(name: str, include_hidden: bool) -> bool:
    return (not include_hidden and name.startswith(".")) or name in EXCLUDED_NAMES


def resolve_root_path(root_path: str | None = None) -> Path:
    """Pick the listing root: the given path, else HOME, else the cwd.

    A file resolves to its parent directory.
    """
    if root_path and root_path.strip():
        selected = Path(root_path)
    else:
        home = os.environ.get("HOME")
        selected = Path(home) if home else Path.cwd()

    if not selected.exists():
        raise FileNotFoundError(f"Path does not exist: {selected}")

    if selected.is_file():
        return selected.parent

    return selected


def _is_dir(path: Path) -> bool:
    # Symlinked directories are listed as entries but never expanded.
    return path.is_dir() and not path.is_symlink()


def _sort_key(path: Path) -> tuple[bool, str]:
    # Ordering follows symlinks, so a link to a directory sorts with them.
    return (not path.is_dir(), path.name.lower())


def build_node(
    path: Path,
    depth: int,
    max_depth: int,
    include_hidden: bool,
) -> FileTreeNode:
    """Build the node for ``path``, recursing until ``max_depth``."""
    is_dir = _is_dir(path)
    node = FileTreeNode(
        name=path.name or str(path),
        path=str(path),
        is_dir=is_dir,
    )

    if not is_dir or depth >= max_depth:
        return node

    entries = sorted(
        (p for p in path.iterdir() if not _should_skip(p.name, include_hidden)),
        key=_sort_key,
    )

    children = []
    for entry in entries:
        try:
            children.append(build_node(entry, depth + 1, max_depth, include_hidden))
        except OSError:
            continue

    node.children = children
    return node


def list_file_tree(
    root_path: str | None = None,
    max_depth: int | None = None,
    include_hidden: bool | None = None,
) -> FileTreeResponse:
    """List the tree under ``root_path``.

    Directories come before files; both are sorted case-insensitively.
    Hidden names are skipped unless ``include_hidden``, and well-known bulk
    directories (``.git``, ``node_modules``, build output) always are.
    """
    root = resolve_root_path(root_path)
    depth = DEFAULT_DEPTH if max_depth is None else max_depth
    depth = min(max(depth, MIN_DEPTH), MAX_DEPTH)
    root_node = build_node(root, 0, depth, bool(include_hidden))
    return FileTreeResponse(root=root_node)
