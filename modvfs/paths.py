"""
Path resolution over the node model.

Traversal is stateless: every function takes the filesystem and a starting
Path and returns a new Path. Symlinks are re-resolved on every traversal.
"""

import logging
from typing import Iterator, Optional

from .config import DEFAULT_CONFIG
from .errors import CyclicReferenceError, NotADirectoryError, NotFoundError, NotAFileError
from .nodes import Directory, FileSystem, Node, Path, make_path, make_root

logger = logging.getLogger(__name__)

MAX_SYMLINK_DEPTH = DEFAULT_CONFIG.max_symlink_depth


class SpecifierParts:
    """
    Components of a path specifier.

    Iterating yields the components lazily and can be repeated. Empty
    components and '.' are dropped; a '/' preceded by a backslash does not
    end a component.
    """

    def __init__(self, spec: str):
        self.spec = spec

    def __iter__(self) -> Iterator[str]:
        spec = self.spec
        start = 0
        pos = -1
        while True:
            pos = spec.find('/', pos + 1)
            while pos > 0 and spec[pos - 1] == '\\':
                pos = spec.find('/', pos + 1)
            part = spec[start:] if pos == -1 else spec[start:pos]
            if part and part != '.':
                yield part
            if pos == -1:
                return
            start = pos + 1

    def __repr__(self) -> str:
        return f'SpecifierParts({self.spec!r})'


def decode_specifier(spec: str) -> SpecifierParts:
    return SpecifierParts(spec)


class _SymlinkBudget:
    """Symlink hops left for one lookup, shared by nested resolutions."""

    def __init__(self, max_depth: int):
        self.max_depth = max_depth
        self.used = 0

    def take(self, path: Path) -> None:
        if self.used >= self.max_depth:
            raise CyclicReferenceError(path.path)
        self.used += 1


def resolve_root(fs: FileSystem, cwd: Path, spec: str) -> Path:
    """Absolute specifiers start at the filesystem root, others at cwd."""
    return make_root(fs) if spec.startswith('/') else cwd


def _follow(fs: FileSystem, path: Path, budget: _SymlinkBudget) -> Path:
    while path.is_link():
        budget.take(path)
        path = _walk(fs, path.parent, path.node.target, budget)
    return path


def _walk(fs: FileSystem, cwd: Path, spec: str, budget: _SymlinkBudget) -> Path:
    current = resolve_root(fs, cwd, spec)
    for part in decode_specifier(spec):
        if current.is_link():
            current = _follow(fs, current, budget)
        if not current.is_dir():
            raise NotADirectoryError(current.path)
        if part == '..':
            if current.parent is not None:
                current = current.parent
            continue
        child = current.node.get(part)
        if child is None:
            raise NotFoundError(current.path + part)
        current = make_path(child, part, current)
    return current


def walk(fs: FileSystem, cwd: Path, spec: str,
         max_depth: int = MAX_SYMLINK_DEPTH) -> Path:
    """
    Follow `spec` from `cwd` without resolving the final component.

    Raises:
        NotFoundError: a component does not exist
        NotADirectoryError: a component other than the last is not a directory
        CyclicReferenceError: more than `max_depth` symlink hops were needed
    """
    return _walk(fs, cwd, spec, _SymlinkBudget(max_depth))


def resolve_symlink(fs: FileSystem, path: Path,
                    max_depth: int = MAX_SYMLINK_DEPTH) -> Path:
    """
    Resolve `path` until it names a directory or a file.

    Each stored target is interpreted relative to the symlink's own parent.
    A target that does not exist raises NotFoundError.
    """
    return _follow(fs, path, _SymlinkBudget(max_depth))


def find(fs: FileSystem, cwd: Path, spec: str,
         max_depth: int = MAX_SYMLINK_DEPTH) -> Path:
    """Follow `spec` from `cwd` and resolve the result to a directory or file."""
    budget = _SymlinkBudget(max_depth)
    return _follow(fs, _walk(fs, cwd, spec, budget), budget)


def try_find(fs: FileSystem, cwd: Path, spec: str,
             max_depth: int = MAX_SYMLINK_DEPTH) -> Optional[Path]:
    """Like find(), but returns None when nothing exists at `spec`."""
    try:
        return find(fs, cwd, spec, max_depth)
    except NotFoundError:
        return None


def lget(cwd: Path, name: str) -> Optional[Path]:
    """Direct child lookup without symlink resolution; None when absent."""
    child = cwd.node.get(name)
    if child is None:
        return None
    return make_path(child, name, cwd)


def get(fs: FileSystem, cwd: Path, name: str,
        max_depth: int = MAX_SYMLINK_DEPTH) -> Optional[Path]:
    """Direct child lookup with symlink resolution; None when absent or dangling."""
    path = lget(cwd, name)
    if path is None:
        return None
    try:
        return resolve_symlink(fs, path, max_depth)
    except NotFoundError:
        logger.debug("dangling symlink %s", path.path)
        return None


def ancestor_search(fs: FileSystem, cwd: Path, name: str) -> Iterator[Path]:
    """
    Yield every `name` entry found in `cwd` and then in each ancestor.

    Nearer entries come first, so the first result shadows the others.
    """
    current: Optional[Path] = cwd
    while current is not None:
        if name in current.node:
            found = get(fs, current, name)
            if found is not None:
                yield found
        current = current.parent


def find_closest(fs: FileSystem, cwd: Path, name: str) -> Optional[Path]:
    for path in ancestor_search(fs, cwd, name):
        return path
    return None


def ensure_dir(path: Path) -> Path:
    if not path.is_dir():
        raise NotADirectoryError(path.path)
    return path


def ensure_file(path: Path) -> Path:
    if not path.is_file():
        raise NotAFileError(path.path)
    return path


def add_entry(parent: Path, name: str, node: Node, overwrite: bool = False) -> Path:
    """Insert `node` under the directory at `parent` and return its Path."""
    ensure_dir(parent).node.add(name, node, overwrite=overwrite)
    return make_path(node, name, parent)


def ensure_child_dir(fs: FileSystem, parent: Path, name: str) -> Path:
    """Return the directory `name` under `parent`, creating it when absent."""
    existing = get(fs, parent, name)
    if existing is not None:
        return ensure_dir(existing)
    return add_entry(parent, name, Directory())
