#!/usr/bin/env python3
"""
Tests for module resolution: relative files, directories, packages and overrides.
"""

import asyncio
import json
import os
import sys
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import pytest

from modvfs.errors import ManifestError, NotADirectoryError, NotFoundError
from modvfs.installer import install
from modvfs.nodes import FileSystem, Symlink, make_root
from modvfs.paths import walk
from modvfs.registry import StaticRegistry
from modvfs.resolver import Resolver, is_relative, resolve, split_package_specifier


def manifest(**fields):
    return json.dumps(fields)


@pytest.fixture
def project():
    return FileSystem.from_dict({
        'package.json': manifest(name='app', main='main.js'),
        'main.js': 'main',
        'util.js': 'util',
        'data.json': '{}',
        'exact': 'no extension',
        'lib': {
            'index.js': 'lib index',
            'helper.js': 'helper',
        },
        'jsondir': {'index.json': '{}'},
        'withmain': {
            'package.json': manifest(main='src/entry'),
            'src': {'entry.js': 'entry'},
        },
        'maindir': {
            'package.json': manifest(main='src'),
            'src': {'index.js': 'src index'},
        },
        'nomanifest': {'other.js': ''},
        'node_modules': {
            'pkg-a': {
                'package.json': manifest(name='a', main='index.js'),
                'index.js': 'a',
                'lib': {'util.js': 'a util'},
            },
            'a': Symlink('pkg-a'),
            'scope+tool': {
                'package.json': manifest(name='@scope/tool'),
                'index.js': 'tool',
            },
            'bare': {'index.js': 'no manifest'},
            'broken': 'not a directory',
        },
        'nested': {
            'node_modules': {
                'a': {
                    'package.json': manifest(name='a', main='near.js'),
                    'near.js': 'near',
                },
            },
            'src': {'file.js': ''},
        },
    })


@pytest.fixture
def root(project):
    return make_root(project)


class TestSpecifierKinds:
    """Test specifier classification."""

    def test_is_relative(self):
        for spec in ('./a', '../a', '/a', '.', '..'):
            assert is_relative(spec)
        for spec in ('a', '@scope/a', 'a/b', '.hidden'):
            assert not is_relative(spec)

    def test_split_package_specifier(self):
        assert split_package_specifier('a') == (None, 'a', None)
        assert split_package_specifier('a/lib/x') == (None, 'a', 'lib/x')
        assert split_package_specifier('@s/a') == ('@s', 'a', None)
        assert split_package_specifier('@s/a/x.js') == ('@s', 'a', 'x.js')


class TestRelativeResolution:
    """Test the file-then-directory strategy."""

    def test_exact_file(self, project, root):
        assert resolve(project, root, './exact').path == '/exact'

    def test_js_extension(self, project, root):
        assert resolve(project, root, './util').path == '/util.js'

    def test_json_extension(self, project, root):
        assert resolve(project, root, './data').path == '/data.json'

    def test_directory_index(self, project, root):
        assert resolve(project, root, './lib').path == '/lib/index.js'

    def test_directory_index_json(self, project, root):
        assert resolve(project, root, './jsondir').path == '/jsondir/index.json'

    def test_directory_manifest_main(self, project, root):
        assert resolve(project, root, './withmain').path == '/withmain/src/entry.js'

    def test_directory_manifest_main_is_directory(self, project, root):
        assert resolve(project, root, './maindir').path == '/maindir/src/index.js'

    def test_parent_and_absolute(self, project, root):
        lib = walk(project, root, 'lib')
        assert resolve(project, lib, '../util').path == '/util.js'
        assert resolve(project, lib, './helper').path == '/lib/helper.js'
        assert resolve(project, lib, '/main').path == '/main.js'

    def test_missing_names_the_specifier(self, project, root):
        with pytest.raises(NotFoundError) as exc:
            resolve(project, root, './nothing')
        assert exc.value.path == './nothing'

    def test_directory_without_entry(self, project, root):
        with pytest.raises(NotFoundError):
            resolve(project, root, './nomanifest')

    def test_traversing_through_file(self, project, root):
        with pytest.raises(NotADirectoryError):
            resolve(project, root, './util.js/x')

    def test_cwd_defaults_to_root(self, project):
        assert resolve(project, None, './util').path == '/util.js'


class TestPackageResolution:
    """Test bare specifiers looked up in dependency directories."""

    def test_aliased_package(self, project, root):
        assert resolve(project, root, 'a').path == '/node_modules/pkg-a/index.js'

    def test_package_subpath(self, project, root):
        assert resolve(project, root, 'a/lib/util').path == '/node_modules/pkg-a/lib/util.js'

    def test_scoped_package(self, project, root):
        assert resolve(project, root, '@scope/tool').path == '/node_modules/scope+tool/index.js'

    def test_package_without_manifest(self, project, root):
        assert resolve(project, root, 'bare').path == '/node_modules/bare/index.js'

    def test_nearest_dependency_directory_wins(self, project, root):
        src = walk(project, root, 'nested/src')
        assert resolve(project, src, 'a').path == '/nested/node_modules/a/near.js'

    def test_falls_back_to_ancestor(self, project, root):
        src = walk(project, root, 'nested/src')
        assert resolve(project, src, 'bare').path == '/node_modules/bare/index.js'

    def test_package_entry_must_be_directory(self, project, root):
        with pytest.raises(NotADirectoryError):
            resolve(project, root, 'broken')

    def test_unknown_package(self, project, root):
        with pytest.raises(NotFoundError) as exc:
            resolve(project, root, 'unknown')
        assert exc.value.path == 'unknown'

    def test_invalid_manifest(self):
        fs = FileSystem.from_dict({
            'node_modules': {'bad': {'package.json': '{oops', 'index.js': ''}},
        })
        with pytest.raises(ManifestError):
            resolve(fs, make_root(fs), 'bad')


class TestPlatformOverrides:
    """Test the manifest's platform-override map."""

    @pytest.fixture
    def browser_project(self):
        return FileSystem.from_dict({
            'package.json': manifest(name='app', browser={
                './native.js': False,
                './server.js': './client.js',
                'fs': False,
                'crypto': 'crypto-lite',
            }),
            'native.js': 'native code',
            'server.js': 'server',
            'client.js': 'client',
            'src': {'inner.js': ''},
            'node_modules': {
                'crypto-lite': {'index.js': 'lite'},
                'crypto': {'index.js': 'full'},
            },
        })

    def test_disabled_file_is_stubbed(self, browser_project):
        resolved = resolve(browser_project, make_root(browser_project), './native.js')
        assert resolved.stub
        assert resolved.node.size == 0

    def test_disabled_file_matched_by_resolved_path(self, browser_project):
        root = make_root(browser_project)
        src = walk(browser_project, root, 'src')
        assert resolve(browser_project, root, './native').stub
        assert resolve(browser_project, src, '../native.js').stub

    def test_replaced_file(self, browser_project):
        root = make_root(browser_project)
        assert resolve(browser_project, root, './server.js').path == '/client.js'
        assert resolve(browser_project, root, './server').path == '/client.js'

    def test_disabled_package(self, browser_project):
        resolved = resolve(browser_project, make_root(browser_project), 'fs')
        assert resolved.stub

    def test_replaced_package(self, browser_project):
        resolved = resolve(browser_project, make_root(browser_project), 'crypto')
        assert resolved.path == '/node_modules/crypto-lite/index.js'

    def test_applies_from_subdirectories(self, browser_project):
        src = walk(browser_project, make_root(browser_project), 'src')
        assert resolve(browser_project, src, 'fs').stub

    def test_string_field_replaces_main(self):
        fs = FileSystem.from_dict({
            'node_modules': {
                'dual': {
                    'package.json': manifest(main='node.js', browser='browser.js'),
                    'node.js': '',
                    'browser.js': '',
                },
            },
        })
        assert resolve(fs, make_root(fs), 'dual').path == '/node_modules/dual/browser.js'

    def test_package_internal_overrides(self):
        fs = FileSystem.from_dict({
            'node_modules': {
                'lib': {
                    'package.json': manifest(main='index.js', browser={'./index.js': './web.js'}),
                    'index.js': '',
                    'web.js': '',
                },
            },
        })
        assert resolve(fs, make_root(fs), 'lib').path == '/node_modules/lib/web.js'

    def test_override_naming_own_package(self):
        fs = FileSystem.from_dict({
            'node_modules': {
                'self': {
                    'package.json': manifest(name='self', browser={'./index.js': 'self'}),
                    'index.js': '',
                },
            },
        })
        assert resolve(fs, make_root(fs), 'self').path == '/node_modules/self/index.js'

    def test_override_naming_own_package_via_alias(self):
        fs = FileSystem.from_dict({
            'node_modules': {
                'self@1': {
                    'package.json': manifest(name='self', main='main.js',
                                             browser={'./main.js': 'self/web'}),
                    'main.js': '',
                    'web.js': '',
                },
                'self': Symlink('self@1'),
            },
        })
        assert resolve(fs, make_root(fs), 'self').path == '/node_modules/self@1/web.js'


class TestResolveAfterInstall:
    """Test resolution over a tree produced by the installer."""

    def test_installed_package(self):
        reg = StaticRegistry()
        reg.publish('dep', '1.0.0', {
            'package.json': manifest(name='dep', version='1.0.0', main='lib/dep.js'),
            'lib': {'dep.js': ''},
        })
        fs = FileSystem.from_dict({
            'package.json': manifest(name='app', dependencies={'dep': '1.0.0'}),
        })
        asyncio.run(install(fs, make_root(fs), reg))

        resolver = Resolver(fs)
        assert resolver.resolve(make_root(fs), 'dep').path == '/node_modules/dep@1.0.0/lib/dep.js'
