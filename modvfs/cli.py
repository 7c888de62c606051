"""Command line interface: inspect trees and resolve or run modules in them."""

import argparse
import json
import logging
import os
import sys
from typing import List, Optional

from .config import DEFAULT_CONFIG, ResolverConfig
from .errors import VFSError
from .evaluator import PythonEvaluator
from .loader import bootstrap
from .nodes import Directory, FileSystem, make_root
from .paths import ensure_dir, find
from .resolver import resolve


def load_source(source: str) -> FileSystem:
    """Load a tree from a host directory or a JSON file."""
    if os.path.isdir(source):
        return FileSystem.from_host(source)
    with open(source, 'r', encoding='utf-8') as f:
        data = json.load(f)
    if isinstance(data, dict) and data.get('type') == 'fs':
        return FileSystem.from_json(json.dumps(data))
    return FileSystem.from_dict(data, origin=source)


def format_tree(directory: Directory, indent: str = '') -> List[str]:
    lines = []
    for name in directory.names():
        node = directory.get(name)
        if node.is_dir():
            lines.append(f'{indent}{name}/')
            lines.extend(format_tree(node, indent + '  '))
        elif node.is_link():
            lines.append(f'{indent}{name} -> {node.target}')
        elif node.is_synced:
            lines.append(f'{indent}{name} ({node.size} bytes)')
        else:
            lines.append(f'{indent}{name} (pending)')
    return lines


def load_config(path: Optional[str]) -> ResolverConfig:
    if not path:
        return DEFAULT_CONFIG
    with open(path, 'r', encoding='utf-8') as f:
        return ResolverConfig.from_dict(json.load(f))


def cmd_tree(args, config: ResolverConfig) -> int:
    fs = load_source(args.source)
    print('/')
    for line in format_tree(fs.root, '  '):
        print(line)
    return 0


def cmd_resolve(args, config: ResolverConfig) -> int:
    fs = load_source(args.source)
    root = make_root(fs)
    cwd = ensure_dir(find(fs, root, args.cwd, config.max_symlink_depth))
    resolved = resolve(fs, cwd, args.specifier, config)
    if resolved.stub:
        print(f'{resolved.path} (stub)')
    else:
        print(resolved.path)
    return 0


def cmd_run(args, config: ResolverConfig) -> int:
    fs = load_source(args.source)
    module = bootstrap(fs, PythonEvaluator(), main=args.main, config=config)
    print(json.dumps(module.exports, indent=2, default=repr))
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog='modvfs',
                                     description='Virtual module filesystem tools')
    parser.add_argument('-v', '--verbose', action='store_true', help='Enable debug logging')
    parser.add_argument('--config', help='JSON file with resolver settings')
    sub = parser.add_subparsers(dest='command', required=True)

    tree = sub.add_parser('tree', help='Print a tree')
    tree.add_argument('source', help='Host directory or JSON tree file')
    tree.set_defaults(func=cmd_tree)

    res = sub.add_parser('resolve', help='Resolve a specifier to a file path')
    res.add_argument('source', help='Host directory or JSON tree file')
    res.add_argument('specifier', help='Import specifier')
    res.add_argument('--cwd', default='/', help='Directory to resolve from')
    res.set_defaults(func=cmd_resolve)

    run = sub.add_parser('run', help='Load the entry module with the Python evaluator')
    run.add_argument('source', help='Host directory or JSON tree file')
    run.add_argument('--main', help='Entry file (default: manifest entry)')
    run.set_defaults(func=cmd_run)
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.WARNING,
                        format='%(levelname)s %(name)s: %(message)s')
    try:
        config = load_config(args.config)
        return args.func(args, config)
    except (VFSError, ValueError, OSError) as e:
        print(f'modvfs: {e}', file=sys.stderr)
        return 1


if __name__ == '__main__':
    sys.exit(main())
