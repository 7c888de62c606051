"""Package manifest parsing."""

import json
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, Optional, Union

from .config import DEFAULT_CONFIG, ResolverConfig
from .errors import ManifestError, NotSyncedError
from .nodes import FileSystem, Path
from .paths import ensure_file, get

# Value of a platform-override entry: a replacement specifier, or False to stub it out
Override = Union[str, bool]

DISABLED = False


@dataclass
class Manifest:
    """The fields of a package manifest the installer and resolver rely on."""
    name: Optional[str] = None
    version: Optional[str] = None
    dependencies: Dict[str, str] = field(default_factory=dict)
    main: Optional[str] = None
    platform: Union[Dict[str, Override], str, None] = None
    path: Optional[str] = None
    raw: Dict[str, Any] = field(default_factory=dict)

    @property
    def overrides(self) -> Dict[str, Override]:
        """Platform-override map, empty when the field is absent or a string."""
        return self.platform if isinstance(self.platform, dict) else {}

    def is_disabled(self, specifier: str) -> bool:
        return self.overrides.get(specifier, True) is DISABLED

    def entry(self, config: ResolverConfig = DEFAULT_CONFIG) -> str:
        """Entry specifier: a string platform field wins over `main`."""
        if isinstance(self.platform, str):
            return self.platform
        return self.main or config.default_main


def _check_mapping(data: Any, key: str, path: Optional[str], value_types: tuple) -> Dict[str, Any]:
    value = data.get(key)
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise ManifestError(f'"{key}" must be an object', path)
    for name, item in value.items():
        if not isinstance(item, value_types):
            raise ManifestError(f'"{key}.{name}" has an invalid value', path)
    return value


def parse_manifest(text: Union[str, bytes], path: Optional[str] = None,
                   required: Iterable[str] = (),
                   config: ResolverConfig = DEFAULT_CONFIG) -> Manifest:
    """
    Parse manifest JSON.

    Raises:
        ManifestError: invalid JSON, a non-object document, a field of the
            wrong type, or a missing field listed in `required`
    """
    try:
        data = json.loads(text)
    except (ValueError, UnicodeDecodeError) as e:
        raise ManifestError(f'unparseable manifest: {e}', path) from e
    if not isinstance(data, dict):
        raise ManifestError('manifest must be a JSON object', path)

    for key in required:
        if key not in data:
            raise ManifestError(f'missing required field "{key}"', path)

    for key in ('name', 'version', 'main'):
        if key in data and not isinstance(data[key], str):
            raise ManifestError(f'"{key}" must be a string', path)

    dependencies = _check_mapping(data, 'dependencies', path, (str,))

    platform = data.get(config.platform_field)
    if isinstance(platform, dict):
        _check_mapping(data, config.platform_field, path, (str, bool))
    elif platform is not None and not isinstance(platform, str):
        platform = None

    return Manifest(
        name=data.get('name'),
        version=data.get('version'),
        dependencies=dict(dependencies),
        main=data.get('main'),
        platform=platform,
        path=path,
        raw=data,
    )


def read_manifest(fs: FileSystem, directory: Path,
                  config: ResolverConfig = DEFAULT_CONFIG) -> Optional[Manifest]:
    """Read the manifest of the package at `directory`; None when it has none."""
    found = get(fs, directory, config.manifest_name, config.max_symlink_depth)
    if found is None:
        return None
    return load_manifest(found, config)


def load_manifest(path: Path, config: ResolverConfig = DEFAULT_CONFIG) -> Manifest:
    """Parse the manifest file at `path`."""
    node = ensure_file(path).node
    if not node.is_synced:
        raise NotSyncedError(path.path)
    return parse_manifest(node.content, path.path, config=config)
