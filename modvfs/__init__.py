"""
modvfs - An in-memory module filesystem with a dependency installer and a module loader.

This package provides a hierarchical virtual filesystem with lazily resolved
symlinks, an installer that grafts a package's dependency graph into it, and
a resolver plus load cache that map import specifiers to evaluated modules.
"""

__version__ = "0.1.0"

from .config import ResolverConfig, DEFAULT_CONFIG

from .errors import (
    VFSError,
    NotFoundError,
    NotADirectoryError,
    NotAFileError,
    CyclicReferenceError,
    EntryExistsError,
    ManifestError,
    FetchError,
    NotSyncedError,
    ArchiveFormatError,
    UnsupportedExtensionError,
)

from .nodes import (
    Node,
    Directory,
    File,
    Symlink,
    FileSystem,
    Path,
    build_tree,
    make_path,
    make_root,
)

from .paths import (
    decode_specifier,
    resolve_root,
    walk,
    find,
    try_find,
    resolve_symlink,
    ancestor_search,
    MAX_SYMLINK_DEPTH,
)

from .manifest import Manifest, parse_manifest, read_manifest

from .installer import InstallSession, install, qualified_id, safe_name

from .resolver import Resolver, resolve

from .loader import LoadCache, Module, ModuleLoader, load, bootstrap, run, run_all

from .evaluator import PythonEvaluator

from .archive import decode_archive, encode_archive

from .registry import StaticRegistry

__all__ = [
    # Configuration
    "ResolverConfig",
    "DEFAULT_CONFIG",

    # Errors
    "VFSError",
    "NotFoundError",
    "NotADirectoryError",
    "NotAFileError",
    "CyclicReferenceError",
    "EntryExistsError",
    "ManifestError",
    "FetchError",
    "NotSyncedError",
    "ArchiveFormatError",
    "UnsupportedExtensionError",

    # Node model
    "Node",
    "Directory",
    "File",
    "Symlink",
    "FileSystem",
    "Path",
    "build_tree",
    "make_path",
    "make_root",

    # Path resolution
    "decode_specifier",
    "resolve_root",
    "walk",
    "find",
    "try_find",
    "resolve_symlink",
    "ancestor_search",
    "MAX_SYMLINK_DEPTH",

    # Manifests and installation
    "Manifest",
    "parse_manifest",
    "read_manifest",
    "InstallSession",
    "install",
    "qualified_id",
    "safe_name",

    # Module resolution and loading
    "Resolver",
    "resolve",
    "LoadCache",
    "Module",
    "ModuleLoader",
    "load",
    "bootstrap",
    "run",
    "run_all",
    "PythonEvaluator",

    # Package sources
    "decode_archive",
    "encode_archive",
    "StaticRegistry",

    # Version info
    "__version__",
]
