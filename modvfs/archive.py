"""
Archive decoding: tar (optionally gzip-compressed) bytes -> FileSystem.

Regular entries become Files, symlink and hardlink entries become Symlinks.
Packages published as archives (npm tarballs) wrap everything in a single
top-level directory; that directory becomes the root.
"""

import io
import logging
import posixpath
import tarfile
from typing import Dict, List

from .errors import ArchiveFormatError, EntryExistsError, NotSyncedError
from .nodes import Directory, File, FileSystem, Node, Symlink

logger = logging.getLogger(__name__)


def _split(name: str) -> List[str]:
    parts = [p for p in name.split('/') if p and p != '.']
    if '..' in parts:
        raise ArchiveFormatError('entry escapes the archive root', name)
    return parts


def _mkdirs(dirs: Dict[str, Directory], parts: List[str]) -> Directory:
    current = dirs['']
    for i, part in enumerate(parts):
        key = '/'.join(parts[:i + 1])
        existing = dirs.get(key)
        if existing is None:
            if part in current:
                raise EntryExistsError(key)
            existing = Directory()
            current.add(part, existing)
            dirs[key] = existing
        current = existing
    return current


def _link_node(member: tarfile.TarInfo, parts: List[str]) -> Node:
    if member.issym():
        return Symlink(member.linkname)
    # Hardlink names are relative to the archive root
    base = '/'.join(parts[:-1]) or '.'
    return Symlink(posixpath.relpath(member.linkname, base))


def decode_archive(data: bytes, origin: str = '') -> FileSystem:
    """
    Decode archive bytes into a new FileSystem.

    Raises:
        ArchiveFormatError: the bytes are not a readable archive, or an entry
            has a malformed header or escapes the root
        EntryExistsError: two entries share a path
    """
    try:
        archive = tarfile.open(fileobj=io.BytesIO(data), mode='r:*')
    except (tarfile.TarError, EOFError, OSError) as e:
        raise ArchiveFormatError(f'invalid archive: {e}', origin or None) from e

    root = Directory()
    dirs: Dict[str, Directory] = {'': root}
    with archive:
        try:
            members = archive.getmembers()
        except (tarfile.TarError, EOFError) as e:
            raise ArchiveFormatError(f'malformed archive header: {e}', origin or None) from e

        for member in members:
            parts = _split(member.name)
            if not parts:
                continue
            if member.isdir():
                _mkdirs(dirs, parts)
                continue

            if member.issym() or member.islnk():
                node = _link_node(member, parts)
            elif member.isfile():
                if member.size < 0:
                    raise ArchiveFormatError('negative entry size', member.name)
                extracted = archive.extractfile(member)
                node = File(extracted.read() if extracted is not None else b'')
            else:
                logger.debug("skipping special archive entry %s", member.name)
                continue

            parent = _mkdirs(dirs, parts[:-1])
            if parts[-1] in parent:
                raise EntryExistsError(member.name, 'archive entry already exists')
            parent.add(parts[-1], node)
            logger.debug("archive entry %s (%d bytes)", member.name, member.size)

    names = root.names()
    if len(names) == 1 and root.get(names[0]).is_dir():
        root = root.get(names[0])
    return FileSystem(root, origin)


def encode_archive(fs: FileSystem, prefix: str = 'package', compress: bool = True) -> bytes:
    """
    Write a FileSystem as a tar archive under a single `prefix` directory.

    Raises:
        NotSyncedError: a file is still pending, named by its filesystem path
    """
    buffer = io.BytesIO()
    mode = 'w:gz' if compress else 'w'
    with tarfile.open(fileobj=buffer, mode=mode) as archive:

        def add(directory: Directory, base: str) -> None:
            for name, node in sorted(directory.items(), key=lambda item: item[0]):
                path = f'{base}/{name}'
                info = tarfile.TarInfo(path)
                if node.is_dir():
                    info.type = tarfile.DIRTYPE
                    info.mode = 0o755
                    archive.addfile(info)
                    add(node, path)
                elif node.is_link():
                    info.type = tarfile.SYMTYPE
                    info.linkname = node.target
                    archive.addfile(info)
                else:
                    if not node.is_synced:
                        raise NotSyncedError('/' + path[len(prefix) + 1:])
                    content = node.content
                    info.size = len(content)
                    info.mode = 0o644
                    archive.addfile(info, io.BytesIO(content))

        add(fs.root, prefix)
    return buffer.getvalue()
