"""
Module loading with a per-run load cache.

A cache entry is registered before a file is evaluated, so a module that is
required again while it is still being evaluated (a require cycle) yields
its current, possibly incomplete, exports instead of being evaluated twice.
"""

import asyncio
import json
import logging
from typing import Any, Callable, Dict, Iterable, List, Optional, Union

from .config import DEFAULT_CONFIG, ResolverConfig
from .errors import NotFoundError, NotSyncedError, UnsupportedExtensionError
from .evaluator import Evaluator
from .installer import FetchRemote, InstallSession, fetch_package, install
from .manifest import read_manifest
from .nodes import FileSystem, Path, make_root
from .paths import ensure_file, resolve_symlink
from .resolver import Resolver, is_relative

logger = logging.getLogger(__name__)


def extension_of(path: str) -> Optional[str]:
    name = path[path.rfind('/') + 1:]
    separator = name.rfind('.')
    if separator <= 0:
        return None
    return name[separator:]


class Module:
    """Load context of one file: its exports and where it sits in the require graph."""

    def __init__(self, id: str, path: Optional[Path] = None,
                 loader: Optional['ModuleLoader'] = None,
                 parent: Optional['Module'] = None,
                 exports: Any = None, loaded: bool = False):
        self.id = id
        self.path = path
        self.filename = path.path if path is not None else id
        self.dirname = path.dirname if path is not None else '/'
        self.exports = {} if exports is None else exports
        self.loaded = loaded
        self.parent = parent
        self.children: List['Module'] = []
        self.paths: List[str] = []
        self._loader = loader
        if path is not None and loader is not None:
            self.paths = _lookup_paths(path.parent, loader.config.dependency_dir)

    @classmethod
    def builtin(cls, name: str, exports: Any) -> 'Module':
        return cls(name, exports=exports, loaded=True)

    @property
    def cwd(self) -> Path:
        return self.path.parent

    def add_child(self, child: 'Module') -> None:
        if child not in self.children:
            self.children.append(child)

    def require(self, specifier: str) -> Any:
        if self._loader is None:
            raise RuntimeError(f"Module {self.id} cannot require other modules")
        return self._loader.require(specifier, self)

    def __repr__(self) -> str:
        state = 'loaded' if self.loaded else 'loading'
        return f'Module({self.id!r}, {state})'


def _lookup_paths(directory: Optional[Path], dependency_dir: str) -> List[str]:
    paths = []
    suffix = f'/{dependency_dir}/'
    current = directory
    while current is not None:
        if not current.path.endswith(suffix):
            paths.append(current.path + dependency_dir)
        current = current.parent
    return paths


class LoadCache:
    """
    Resolved path -> Module, for one top-level run.

    Bare specifiers are also stored under their literal text. Built-in
    modules are seeded by name and count as fully loaded.
    """

    def __init__(self, builtins: Optional[Dict[str, Any]] = None):
        self.entries: Dict[str, Module] = {}
        for name, exports in (builtins or {}).items():
            self.entries[name] = Module.builtin(name, exports)

    def get(self, key: str) -> Optional[Module]:
        return self.entries.get(key)

    def add(self, key: str, module: Module) -> None:
        self.entries[key] = module

    def keys(self) -> List[str]:
        return list(self.entries.keys())

    def __contains__(self, key: str) -> bool:
        return key in self.entries

    def __len__(self) -> int:
        return len(self.entries)


Loader = Callable[[Path, Module], None]


class ModuleLoader:
    """Resolves, caches and evaluates modules of one filesystem."""

    def __init__(self, fs: FileSystem, evaluator: Evaluator,
                 cache: Optional[LoadCache] = None,
                 config: ResolverConfig = DEFAULT_CONFIG,
                 loaders: Optional[Dict[str, Loader]] = None):
        self.fs = fs
        self.evaluator = evaluator
        self.cache = cache if cache is not None else LoadCache()
        self.config = config
        self.resolver = Resolver(fs, config)
        self.main: Optional[Module] = None
        self.loaders: Dict[str, Loader] = {ext: self._evaluate for ext in config.extensions}
        self.loaders['.json'] = self._load_json
        self.loaders.update(loaders or {})

    def _evaluate(self, path: Path, module: Module) -> None:
        result = self.evaluator(path.node.text, module)
        if result is not None:
            module.exports = result

    def _load_json(self, path: Path, module: Module) -> None:
        module.exports = json.loads(path.node.text)

    def _invoke(self, path: Path, module: Module) -> None:
        if path.stub:
            module.loaded = True
            return
        ext = extension_of(path.path) or '.js'
        loader = self.loaders.get(ext)
        if loader is None:
            raise UnsupportedExtensionError(path.path, ext)
        if not path.node.is_synced:
            raise NotSyncedError(path.path)
        loader(path, module)
        module.loaded = True

    def load(self, path: Path, parent: Optional[Module] = None,
             alias: Optional[str] = None) -> Module:
        """
        Load the file at `path`, evaluating it only on a cache miss.

        The cache entry exists before evaluation starts; a failed evaluation
        leaves it registered and not loaded.

        Raises:
            NotAFileError: `path` does not name a file once symlinks are followed
        """
        if path.is_link():
            path = resolve_symlink(self.fs, path, self.config.max_symlink_depth)
        ensure_file(path)
        module = self.cache.get(path.path)
        if module is not None:
            logger.debug("cache hit %s (loaded=%s)", path.path, module.loaded)
            if parent is not None:
                parent.add_child(module)
            return module

        module = Module(path.path, path, self, parent)
        self.cache.add(path.path, module)
        if alias is not None:
            self.cache.add(alias, module)
        if parent is not None:
            parent.add_child(module)
        if self.main is None:
            self.main = module
        self._invoke(path, module)
        return module

    def require(self, specifier: str, parent: Module) -> Any:
        """Exports of `specifier` as imported from `parent`."""
        bare = '/' not in specifier and not is_relative(specifier)
        if bare:
            cached = self.cache.get(specifier)
            if cached is not None:
                return cached.exports
        resolved = self.resolver.resolve(parent.cwd, specifier)
        return self.load(resolved, parent, alias=specifier if bare else None).exports


def load(fs: FileSystem, entry: Union[Path, str], evaluator: Evaluator,
         cache: Optional[LoadCache] = None, cwd: Optional[Path] = None,
         config: ResolverConfig = DEFAULT_CONFIG) -> Any:
    """Load `entry` (a Path or a specifier resolved from `cwd`) and return its exports."""
    loader = ModuleLoader(fs, evaluator, cache, config)
    if isinstance(entry, str):
        entry = loader.resolver.resolve(cwd or make_root(fs), entry)
    return loader.load(entry).exports


def bootstrap(fs: FileSystem, evaluator: Evaluator, main: Optional[str] = None,
              builtins: Optional[Dict[str, Any]] = None,
              cache: Optional[LoadCache] = None,
              config: ResolverConfig = DEFAULT_CONFIG) -> Module:
    """
    Load the entry module of the package at the filesystem root.

    The entry is `main` when given, else the root manifest's entry field.
    """
    root = make_root(fs)
    if main is None:
        manifest = read_manifest(fs, root, config)
        if manifest is None:
            raise NotFoundError(root.path + config.manifest_name)
        main = manifest.entry(config)
    if cache is None:
        cache = LoadCache(builtins)
    loader = ModuleLoader(fs, evaluator, cache, config)
    entry = loader.resolver.resolve(root, '/' + main)
    logger.debug("bootstrapping %s", entry.path)
    return loader.load(entry)


async def run(fs_or_name: Union[FileSystem, str], fetch_remote: FetchRemote,
              evaluator: Evaluator, main: Optional[str] = None,
              builtins: Optional[Dict[str, Any]] = None,
              constraint: str = 'latest',
              config: ResolverConfig = DEFAULT_CONFIG) -> Any:
    """
    Fetch (when given a name), install and bootstrap a package.

    Returns:
        The exports of the package's entry module
    """
    if isinstance(fs_or_name, str):
        fs = await fetch_package(fetch_remote, fs_or_name, constraint)
    else:
        fs = fs_or_name
    await install(fs, make_root(fs), fetch_remote, session=InstallSession(), config=config)
    return bootstrap(fs, evaluator, main=main, builtins=builtins, config=config).exports


async def run_all(items: Iterable[Union[FileSystem, str]], fetch_remote: FetchRemote,
                  evaluator: Evaluator, main: Optional[str] = None,
                  builtins: Optional[Dict[str, Any]] = None,
                  config: ResolverConfig = DEFAULT_CONFIG) -> List[Any]:
    """Run several packages concurrently, each with its own load cache."""
    return list(await asyncio.gather(*(
        run(item, fetch_remote, evaluator, main=main, builtins=builtins, config=config)
        for item in items
    )))
