"""
Module resolution: import specifier + current directory -> file Path.

Order of strategies, first match wins:

1. platform-override map of the nearest enclosing manifest
2. relative or absolute specifiers: as a file, then as a directory
3. bare specifiers: package lookup through ancestor dependency directories
"""

import logging
import re
from typing import Dict, Optional, Set

from .config import DEFAULT_CONFIG, ResolverConfig
from .errors import NotADirectoryError, NotFoundError
from .installer import safe_name
from .manifest import DISABLED, Manifest, Override, load_manifest, read_manifest
from .nodes import File, FileSystem, Path, make_root
from .paths import ancestor_search, ensure_dir, find_closest, get, try_find

logger = logging.getLogger(__name__)

PACKAGE_SPECIFIER = re.compile(r'^(?:(@[^/]+)/)?([^@/]+)(?:/(.+))?$')
RELATIVE_SPECIFIER = re.compile(r'^\.{0,2}/')


def is_relative(specifier: str) -> bool:
    return bool(RELATIVE_SPECIFIER.match(specifier)) or specifier in ('.', '..')


def split_package_specifier(specifier: str):
    """Split 'name', '@scope/name' or either followed by '/subpath'."""
    match = PACKAGE_SPECIFIER.match(specifier)
    if not match:
        return None, specifier, None
    namespace, name, subpath = match.groups()
    return namespace, name, subpath


def stub_path(directory: Path, name: str) -> Path:
    """Empty module standing in for a disabled specifier."""
    relative = name[2:] if name.startswith('./') else name
    return Path(node=File(b''), path=directory.path + relative, name=name,
                parent=directory, stub=True)


class PlatformOverrides:
    """
    Platform-override map of one package.

    Keys are matched against the specifier exactly. Keys naming files inside
    the package are also matched against resolved file paths, so
    './lib/native.js' intercepts 'lib/native', '../lib/native.js' and so on.
    """

    def __init__(self, fs: FileSystem, directory: Optional[Path],
                 manifest: Optional[Manifest], config: ResolverConfig = DEFAULT_CONFIG):
        self.fs = fs
        self.directory = directory
        self.config = config
        self.exact: Dict[str, Override] = dict(manifest.overrides) if manifest else {}
        self.by_path: Dict[str, Override] = {}
        if directory is not None:
            for key, value in self.exact.items():
                if '/' in key:
                    found = _probe_file(fs, directory, key, config)
                    if found is not None:
                        self.by_path[found.path] = value

    def __bool__(self) -> bool:
        return bool(self.exact)

    def lookup(self, specifier: str) -> Optional[Override]:
        return self.exact.get(specifier)

    def lookup_path(self, path: Path) -> Optional[Override]:
        return self.by_path.get(path.path)


NO_OVERRIDES = PlatformOverrides(FileSystem(), None, None)


def _probe_file(fs: FileSystem, cwd: Path, specifier: str,
                config: ResolverConfig) -> Optional[Path]:
    """Try `specifier` as a file, then with each known extension appended."""
    for candidate in [specifier] + [specifier + ext for ext in config.extensions]:
        found = try_find(fs, cwd, candidate, config.max_symlink_depth)
        if found is not None and found.is_file():
            return found
    return None


def _probe_index(fs: FileSystem, cwd: Path, specifier: str,
                 config: ResolverConfig) -> Optional[Path]:
    base = specifier.rstrip('/') + '/' + config.index_name
    for ext in config.extensions:
        found = try_find(fs, cwd, base + ext, config.max_symlink_depth)
        if found is not None and found.is_file():
            return found
    return None


class Resolver:
    """Resolves specifiers against one filesystem."""

    def __init__(self, fs: FileSystem, config: ResolverConfig = DEFAULT_CONFIG):
        self.fs = fs
        self.config = config
        # Package directories whose manifest is being applied
        self._entered: Set[str] = set()

    def overrides_for(self, cwd: Path) -> PlatformOverrides:
        """Overrides declared by the nearest manifest at or above `cwd`."""
        manifest_path = find_closest(self.fs, cwd, self.config.manifest_name)
        if manifest_path is None or not manifest_path.is_file():
            return NO_OVERRIDES
        manifest = load_manifest(manifest_path, self.config)
        if not manifest.overrides:
            return NO_OVERRIDES
        return PlatformOverrides(self.fs, manifest_path.parent, manifest, self.config)

    def _apply_path_override(self, found: Optional[Path],
                             overrides: PlatformOverrides) -> Optional[Path]:
        if found is None or not overrides:
            return found
        override = overrides.lookup_path(found)
        if override is None:
            return found
        if override is DISABLED:
            return Path(node=File(b''), path=found.path, name=found.name,
                        parent=found.parent, stub=True)
        if isinstance(override, str):
            return self._resolve_replacement(override, overrides)
        return found

    def _resolve_replacement(self, replacement: str, overrides: PlatformOverrides) -> Path:
        # Replacements are declared relative to the package that declares them
        if is_relative(replacement):
            found = self._load_relative(overrides.directory, replacement, NO_OVERRIDES)
        else:
            found = self._load_package(overrides.directory, replacement, NO_OVERRIDES)
        if found is None:
            raise NotFoundError(replacement, 'cannot find module')
        return found

    def load_as_file(self, cwd: Path, specifier: str,
                     overrides: PlatformOverrides = NO_OVERRIDES) -> Optional[Path]:
        return self._apply_path_override(
            _probe_file(self.fs, cwd, specifier, self.config), overrides)

    def load_as_index(self, cwd: Path, specifier: str,
                      overrides: PlatformOverrides = NO_OVERRIDES) -> Optional[Path]:
        return self._apply_path_override(
            _probe_index(self.fs, cwd, specifier, self.config), overrides)

    def load_as_directory(self, cwd: Path, specifier: str,
                          overrides: PlatformOverrides = NO_OVERRIDES) -> Optional[Path]:
        target = try_find(self.fs, cwd, specifier, self.config.max_symlink_depth)
        if target is None or not target.is_dir():
            return None
        return (self.load_as_index(cwd, specifier, overrides)
                or self.load_as_package_dir(target))

    def load_as_package_dir(self, directory: Path,
                            requested: Optional[str] = None) -> Optional[Path]:
        """
        Resolve `requested` (default: the manifest entry) inside a package.

        The package's own override map applies to paths inside it, except
        while resolving a replacement that leads back into the same package.
        """
        manifest = read_manifest(self.fs, directory, self.config)
        if manifest is None:
            if requested is None:
                return self.load_as_index(directory, '.')
            return (self.load_as_file(directory, requested)
                    or self.load_as_index(directory, requested))
        entry = requested or manifest.entry(self.config)
        if directory.path in self._entered:
            return (self.load_as_file(directory, entry)
                    or self.load_as_index(directory, entry))

        overrides = PlatformOverrides(self.fs, directory, manifest, self.config)
        self._entered.add(directory.path)
        try:
            return (self.load_as_file(directory, entry, overrides)
                    or self.load_as_index(directory, entry, overrides))
        finally:
            self._entered.discard(directory.path)

    def _load_relative(self, cwd: Path, specifier: str,
                       overrides: PlatformOverrides) -> Optional[Path]:
        return (self.load_as_file(cwd, specifier, overrides)
                or self.load_as_directory(cwd, specifier, overrides))

    def _load_package(self, cwd: Path, specifier: str,
                      overrides: PlatformOverrides) -> Optional[Path]:
        namespace, name, subpath = split_package_specifier(specifier)
        package_name = f'{namespace}/{name}' if namespace else name
        override = overrides.lookup(package_name)
        if override is DISABLED:
            return stub_path(overrides.directory, specifier)
        if isinstance(override, str) and override != package_name:
            replacement = override if subpath is None else f'{override}/{subpath}'
            return self._resolve_replacement(replacement, overrides)

        logger.debug("loading module %s: %s %s at %s", specifier, namespace, name, subpath)
        for deps in ancestor_search(self.fs, cwd, self.config.dependency_dir):
            if not deps.is_dir():
                continue
            package = get(self.fs, deps, safe_name(package_name), self.config.max_symlink_depth)
            if package is None:
                continue
            if not package.is_dir():
                raise NotADirectoryError(package.path, 'package entry is not a directory')
            return self.load_as_package_dir(package, subpath)
        return None

    def resolve(self, cwd: Path, specifier: str) -> Path:
        """
        Map `specifier`, imported from directory `cwd`, to a file Path.

        Disabled specifiers resolve to an empty stub Path (``stub`` is True).

        Raises:
            NotFoundError: no strategy produced a file
            NotADirectoryError: a traversal step or package entry is a file
            CyclicReferenceError: symlink chain too long
            ManifestError: an involved manifest is invalid
        """
        ensure_dir(cwd)
        overrides = self.overrides_for(cwd)

        override = overrides.lookup(specifier)
        if override is DISABLED:
            return stub_path(overrides.directory, specifier)
        if isinstance(override, str):
            return self._resolve_replacement(override, overrides)

        if is_relative(specifier):
            found = self._load_relative(cwd, specifier, overrides)
        else:
            found = self._load_package(cwd, specifier, overrides)
        if found is None:
            raise NotFoundError(specifier, 'cannot find module')
        return found


def resolve(fs: FileSystem, cwd: Optional[Path], specifier: str,
            config: ResolverConfig = DEFAULT_CONFIG) -> Path:
    """Resolve `specifier` from directory `cwd` (the root when None)."""
    if cwd is None:
        cwd = make_root(fs)
    return Resolver(fs, config).resolve(cwd, specifier)
