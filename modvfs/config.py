"""Resolution and installation settings."""

from dataclasses import dataclass, fields
from typing import Any, Dict, Tuple


@dataclass(frozen=True)
class ResolverConfig:
    """Naming conventions shared by the installer and the module resolver."""
    manifest_name: str = 'package.json'
    dependency_dir: str = 'node_modules'
    platform_field: str = 'browser'
    extensions: Tuple[str, ...] = ('.js', '.json')
    index_name: str = 'index'
    default_main: str = 'index.js'
    max_symlink_depth: int = 20

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ResolverConfig':
        """
        Build a config from a JSON object.

        Raises:
            ValueError: an unknown key, or a value of the wrong type
        """
        if not isinstance(data, dict):
            raise ValueError("Config must be a JSON object")
        known = {f.name for f in fields(cls)}
        unknown = set(data) - known
        if unknown:
            raise ValueError(f"Unknown config keys: {', '.join(sorted(unknown))}")

        values = dict(data)
        for key, value in values.items():
            if key == 'extensions':
                if (not isinstance(value, (list, tuple))
                        or not all(isinstance(ext, str) for ext in value)):
                    raise ValueError("Config key 'extensions' must be a list of strings")
            elif key == 'max_symlink_depth':
                # bool is an int subclass
                if not isinstance(value, int) or isinstance(value, bool) or value < 0:
                    raise ValueError("Config key 'max_symlink_depth' must be a non-negative integer")
            elif not isinstance(value, str) or not value:
                raise ValueError(f"Config key '{key}' must be a non-empty string")

        if 'extensions' in values:
            values['extensions'] = tuple(values['extensions'])
        return cls(**values)


DEFAULT_CONFIG = ResolverConfig()
