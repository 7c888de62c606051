"""
Dependency installer.

Grows a filesystem in place with the transitive dependency graph of the
package at a given directory. Fetching is delegated to a remote-fetch
callable; this module only decides what to fetch and where to graft it.

Layout produced under each package root:

    <package>/node_modules/<safe-name>@<constraint>/   grafted package root
    <package>/node_modules/<safe-name> -> <safe-name>@<constraint>
"""

import asyncio
import inspect
import logging
from typing import Awaitable, Callable, Dict, List, Optional, Union

from .config import DEFAULT_CONFIG, ResolverConfig
from .errors import CyclicReferenceError, FetchError
from .manifest import read_manifest
from .nodes import FileSystem, Node, Path, Symlink
from .paths import add_entry, ensure_child_dir, ensure_dir, get

logger = logging.getLogger(__name__)

FetchRemote = Callable[[str, str], Union[FileSystem, Awaitable[FileSystem]]]


def safe_name(name: str) -> str:
    """Filesystem-safe form of a package name: '@scope/name' -> 'scope+name'."""
    if name.startswith('@'):
        name = name[1:]
    return name.replace('/', '+', 1)


def qualified_id(name: str, constraint: str) -> str:
    """
    Dependency-directory entry name for one name and version constraint.

    Separators in the constraint ('user/repo', tarball URLs) become '+' so
    the entry stays a single path component.
    """
    return f"{safe_name(name)}@{constraint.replace('/', '+')}"


class InstallSession:
    """
    Fetches of one top-level install run, keyed by qualified identifier.

    The first branch to need a package fetches and grafts it; every other
    branch waits for that graft and links to its location instead of
    fetching the package again.
    """

    def __init__(self):
        self._installs: Dict[str, 'asyncio.Future[str]'] = {}

    def lookup(self, qid: str) -> Optional['asyncio.Future[str]']:
        return self._installs.get(qid)

    def claim(self, qid: str) -> 'asyncio.Future[str]':
        future = asyncio.get_running_loop().create_future()
        self._installs[qid] = future
        return future

    def __contains__(self, qid: str) -> bool:
        return qid in self._installs

    def __len__(self) -> int:
        return len(self._installs)


async def fetch_package(fetch_remote: FetchRemote, name: str, constraint: str) -> FileSystem:
    """Call the fetch capability, wrapping its failures in FetchError."""
    try:
        result = fetch_remote(name, constraint)
        if inspect.isawaitable(result):
            result = await result
    except FetchError:
        raise
    except Exception as e:
        raise FetchError(name, constraint, f'fetch failed: {e}') from e
    if not isinstance(result, FileSystem):
        raise FetchError(name, constraint,
                         f'fetch returned {type(result).__name__}, expected FileSystem')
    return result


def _check_not_ancestor(node: Node, parent: Path) -> None:
    current: Optional[Path] = parent
    while current is not None:
        if current.node is node:
            raise CyclicReferenceError(parent.path, 'cannot graft a directory into itself')
        current = current.parent


def _alias(deps: Path, name: str, target: str) -> None:
    alias = safe_name(name)
    add_entry(deps, alias, Symlink(target), overwrite=True)
    logger.debug("alias %s%s -> %s", deps.path, alias, target)


async def _install_dependency(fs: FileSystem, deps: Path, name: str, constraint: str,
                              fetch_remote: FetchRemote, session: InstallSession,
                              config: ResolverConfig) -> Optional[Path]:
    qid = qualified_id(name, constraint)

    local = get(fs, deps, qid, config.max_symlink_depth)
    if local is not None:
        ensure_dir(local)
        logger.debug("reusing %s%s", deps.path, qid)
        _alias(deps, name, qid)
        return None

    in_flight = session.lookup(qid)
    if in_flight is not None:
        location = await in_flight
        logger.debug("linking %s%s to %s", deps.path, qid, location)
        if qid not in deps.node:
            add_entry(deps, qid, Symlink(location))
        _alias(deps, name, qid)
        return None

    future = session.claim(qid)
    logger.debug("fetching %s", qid)
    try:
        package_fs = await fetch_package(fetch_remote, name, constraint)
        _check_not_ancestor(package_fs.root, deps)
        package = add_entry(deps, qid, package_fs.root)
    except asyncio.CancelledError:
        future.cancel()
        raise
    except Exception as e:
        future.set_exception(e)
        # Mark retrieved: waiters re-raise it, and there may be none
        future.exception()
        raise
    future.set_result(package.path)
    logger.debug("grafted %s", package.path)
    _alias(deps, name, qid)

    await install(fs, package, fetch_remote, session=session, config=config)
    return package


async def install(fs: FileSystem, at: Path, fetch_remote: FetchRemote,
                  session: Optional[InstallSession] = None,
                  config: ResolverConfig = DEFAULT_CONFIG) -> List[Path]:
    """
    Install the dependencies declared by the manifest at `at`.

    Sibling dependencies are fetched concurrently; each newly grafted package
    is then installed in turn. A failure in one branch does not cancel its
    siblings, and grafts already made are kept. Once every sibling has
    settled, the first failure is raised.

    Args:
        fs: Filesystem grown in place
        at: Directory holding the package manifest
        fetch_remote: Callable (name, constraint) -> FileSystem, sync or async
        session: Run-scoped fetch record; created when omitted

    Returns:
        Paths of the packages grafted directly under `at`

    Raises:
        ManifestError: the manifest at `at` or a dependency's is invalid
        FetchError: a dependency could not be fetched
    """
    manifest = read_manifest(fs, at, config)
    if manifest is None:
        logger.debug("no manifest at %s", at.path)
        return []

    dependencies = [(name, constraint) for name, constraint in manifest.dependencies.items()
                    if not manifest.is_disabled(name)]
    if not dependencies:
        return []

    if session is None:
        session = InstallSession()
    deps = ensure_child_dir(fs, at, config.dependency_dir)

    results = await asyncio.gather(
        *(_install_dependency(fs, deps, name, constraint, fetch_remote, session, config)
          for name, constraint in dependencies),
        return_exceptions=True,
    )

    errors = [r for r in results if isinstance(r, BaseException)]
    for error in errors:
        logger.warning("install failed under %s: %s", at.path, error)
    if errors:
        raise errors[0]
    return [r for r in results if r is not None]
