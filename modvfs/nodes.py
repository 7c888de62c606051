"""
Node model for the virtual module filesystem.

Core rules:
- A tree is made of Directory, File and Symlink nodes
- Directories own their children exclusively; nodes carry no parent link
- A Symlink stores a path string, never a reference to another node
- Location is only known through a Path, the result of a traversal
"""

import base64
import json
import os
from dataclasses import dataclass
from typing import Dict, Iterator, List, Optional, Tuple, Union, Any

from .errors import EntryExistsError, NotADirectoryError, NotSyncedError


Content = Union[str, bytes]


def _to_bytes(content: Content) -> bytes:
    if isinstance(content, str):
        return content.encode('utf-8')
    return bytes(content)


class Node:
    """Base class for all tree nodes."""
    kind = 'node'

    def is_file(self) -> bool:
        return self.kind == 'file'

    def is_dir(self) -> bool:
        return self.kind == 'directory'

    def is_link(self) -> bool:
        return self.kind == 'symlink'

    def to_dict(self) -> dict:
        raise NotImplementedError


@dataclass(frozen=True)
class Pending:
    """File whose content has not been fetched yet."""


@dataclass(frozen=True)
class Loaded:
    """File whose content is available."""
    content: bytes


class File(Node):
    """
    Regular file.

    Content is held in an explicit state: Pending until fetched, then Loaded.
    Writable files (host-primitive stand-ins) may replace their content in place.
    """
    kind = 'file'

    def __init__(self, content: Content = b'', writable: bool = False):
        self.state: Union[Pending, Loaded] = Loaded(_to_bytes(content))
        self.writable = writable

    @classmethod
    def pending(cls, writable: bool = False) -> 'File':
        """Create a file whose content arrives later through fulfil()."""
        node = cls(writable=writable)
        node.state = Pending()
        return node

    @property
    def is_synced(self) -> bool:
        return isinstance(self.state, Loaded)

    @property
    def content(self) -> bytes:
        if not isinstance(self.state, Loaded):
            raise NotSyncedError(None)
        return self.state.content

    @property
    def text(self) -> str:
        return self.content.decode('utf-8')

    @property
    def size(self) -> int:
        if isinstance(self.state, Loaded):
            return len(self.state.content)
        return 0

    def fulfil(self, content: Content) -> None:
        """Move a pending file to the loaded state."""
        if isinstance(self.state, Loaded):
            raise ValueError("File content is already loaded")
        self.state = Loaded(_to_bytes(content))

    def write(self, content: Content) -> int:
        """Replace the content of a writable file."""
        if not self.writable:
            raise PermissionError("File is read-only")
        data = _to_bytes(content)
        self.state = Loaded(data)
        return len(data)

    def to_dict(self) -> dict:
        d = {'type': 'file', 'writable': self.writable}
        if isinstance(self.state, Loaded):
            d['content'] = base64.b64encode(self.state.content).decode('ascii')
        else:
            d['content'] = None
        return d

    def __repr__(self) -> str:
        if not self.is_synced:
            return 'File(<pending>)'
        return f'File(size={self.size})'


class Symlink(Node):
    """Symbolic link holding a path string, resolved lazily on each traversal."""
    kind = 'symlink'

    def __init__(self, target: str):
        self.target = target

    def to_dict(self) -> dict:
        return {'type': 'symlink', 'target': self.target}

    def __repr__(self) -> str:
        return f'Symlink({self.target!r})'


class Directory(Node):
    """Directory mapping unique names to the child nodes it owns."""
    kind = 'directory'

    def __init__(self, entries: Optional[Dict[str, Node]] = None):
        self.entries: Dict[str, Node] = dict(entries or {})

    def get(self, name: str) -> Optional[Node]:
        """Return the child named `name`, or None when absent."""
        return self.entries.get(name)

    def add(self, name: str, node: Node, overwrite: bool = False) -> Node:
        """Insert a child; replacing an existing name requires overwrite=True."""
        if not overwrite and name in self.entries:
            raise EntryExistsError(name)
        self.entries[name] = node
        return node

    def remove(self, name: str) -> Optional[Node]:
        return self.entries.pop(name, None)

    def names(self) -> List[str]:
        return sorted(self.entries.keys())

    def items(self) -> Iterator[Tuple[str, Node]]:
        return iter(list(self.entries.items()))

    def __iter__(self) -> Iterator[Tuple[str, Node]]:
        return self.items()

    def __contains__(self, name: str) -> bool:
        return name in self.entries

    def __len__(self) -> int:
        return len(self.entries)

    def to_dict(self) -> dict:
        return {
            'type': 'directory',
            'entries': {name: child.to_dict() for name, child in self.entries.items()},
        }

    def __repr__(self) -> str:
        return f'Directory({self.names()!r})'


@dataclass(frozen=True, eq=False)
class Path:
    """
    Where a node was found: the node plus the location used to reach it.

    Directory paths end with '/', the root path is '/'. Two paths may point
    at the same node (for instance through two aliases).
    """
    node: Node
    path: str
    name: str
    parent: Optional['Path'] = None
    stub: bool = False

    def is_file(self) -> bool:
        return self.node.is_file()

    def is_dir(self) -> bool:
        return self.node.is_dir()

    def is_link(self) -> bool:
        return self.node.is_link()

    @property
    def dirname(self) -> str:
        return self.parent.path if self.parent is not None else '/'

    def __str__(self) -> str:
        return self.path


def make_path(node: Node, name: str, parent: Path) -> Path:
    """Build the Path of `node` found under `parent` as `name`."""
    suffix = '/' if node.is_dir() else ''
    return Path(node=node, path=f'{parent.path}{name}{suffix}', name=name, parent=parent)


def build_tree(tree: Union[Dict[str, Any], Content, Node]) -> Node:
    """
    Build nodes from nested mappings.

    Strings and bytes become files, dicts become directories and Node
    instances are inserted as given.
    """
    if isinstance(tree, Node):
        return tree
    if isinstance(tree, (str, bytes)):
        return File(tree)
    return Directory({name: build_tree(child) for name, child in tree.items()})


def _node_from_dict(data: dict) -> Node:
    node_type = data.get('type')
    if node_type == 'directory':
        return Directory({name: _node_from_dict(child)
                          for name, child in data.get('entries', {}).items()})
    if node_type == 'file':
        if data.get('content') is None:
            return File.pending(writable=data.get('writable', False))
        return File(base64.b64decode(data['content']), writable=data.get('writable', False))
    if node_type == 'symlink':
        return Symlink(data['target'])
    raise ValueError(f"Unknown node type: {node_type!r}")


class FileSystem:
    """A root directory plus the origin it was produced from."""

    def __init__(self, root: Optional[Directory] = None, origin: str = ''):
        self.root = root if root is not None else Directory()
        self.origin = origin

    @classmethod
    def from_dict(cls, tree: Dict[str, Any], origin: str = '') -> 'FileSystem':
        """Build a filesystem from nested name -> content mappings."""
        root = build_tree(tree)
        if not isinstance(root, Directory):
            raise ValueError("Filesystem root must be a directory")
        return cls(root, origin)

    @classmethod
    def from_host(cls, real_path: str, origin: Optional[str] = None) -> 'FileSystem':
        """Import a real directory; host symlinks are kept as symlinks."""
        real_path = os.path.abspath(os.path.expanduser(real_path))
        if not os.path.isdir(real_path):
            raise NotADirectoryError(real_path)

        def walk(directory: str) -> Directory:
            node = Directory()
            with os.scandir(directory) as it:
                for entry in it:
                    if entry.is_symlink():
                        node.add(entry.name, Symlink(os.readlink(entry.path)))
                    elif entry.is_dir():
                        node.add(entry.name, walk(entry.path))
                    elif entry.is_file():
                        with open(entry.path, 'rb') as f:
                            node.add(entry.name, File(f.read()))
            return node

        return cls(walk(real_path), origin if origin is not None else real_path)

    def to_dict(self) -> dict:
        return {'type': 'fs', 'origin': self.origin, 'root': self.root.to_dict()}

    def to_json(self) -> str:
        """Serialize the filesystem to JSON."""
        return json.dumps(self.to_dict(), indent=2)

    @classmethod
    def from_json(cls, json_str: str) -> 'FileSystem':
        """Deserialize a filesystem written by to_json()."""
        data = json.loads(json_str)
        if data.get('type') != 'fs':
            raise ValueError("Not a serialized filesystem")
        root = _node_from_dict(data['root'])
        if not isinstance(root, Directory):
            raise ValueError("Filesystem root must be a directory")
        return cls(root, data.get('origin', ''))

    def __repr__(self) -> str:
        return f'FileSystem(origin={self.origin!r}, root={self.root!r})'


def make_root(fs: FileSystem) -> Path:
    """Path of the filesystem root."""
    return Path(node=fs.root, path='/', name='', parent=None)
