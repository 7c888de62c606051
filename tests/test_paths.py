#!/usr/bin/env python3
"""
Tests for path traversal: specifier decoding, '..', symlinks and ancestor search.
"""

import os
import sys
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import pytest

from modvfs.errors import CyclicReferenceError, NotADirectoryError, NotFoundError
from modvfs.nodes import Directory, FileSystem, Symlink, make_root
from modvfs.paths import (
    ancestor_search, decode_specifier, ensure_child_dir, find, find_closest, get,
    lget, resolve_root, resolve_symlink, try_find, walk,
)


@pytest.fixture
def fs():
    return FileSystem.from_dict({
        'a': {
            'b': {'c.txt': 'C'},
            'f.txt': 'F',
        },
        'real': {'inner.txt': 'I'},
        'alias': Symlink('real'),
        'abs': Symlink('/a/b'),
        'dangling': Symlink('nowhere'),
    })


@pytest.fixture
def root(fs):
    return make_root(fs)


class TestDecodeSpecifier:
    """Test splitting specifiers into components."""

    def test_drops_empty_and_dot_components(self):
        assert list(decode_specifier('/a/./b//c/')) == ['a', 'b', 'c']

    def test_keeps_dotdot(self):
        assert list(decode_specifier('../x/..')) == ['..', 'x', '..']

    def test_escaped_separator_is_not_a_boundary(self):
        assert list(decode_specifier('a\\/b/c')) == ['a\\/b', 'c']

    def test_sequence_is_restartable(self):
        parts = decode_specifier('x/y/z')
        assert list(parts) == ['x', 'y', 'z']
        assert list(parts) == ['x', 'y', 'z']

    def test_empty_specifier(self):
        assert list(decode_specifier('')) == []
        assert list(decode_specifier('/')) == []


class TestWalk:
    """Test component-by-component traversal."""

    def test_resolve_root(self, fs, root):
        b = walk(fs, root, 'a/b')
        assert resolve_root(fs, b, '/x') is not b
        assert resolve_root(fs, b, '/x').path == '/'
        assert resolve_root(fs, b, 'x') is b

    def test_round_trip_through_full_path(self, fs, root):
        for spec in ('a', 'a/b', 'a/b/c.txt', 'a/f.txt'):
            found = walk(fs, root, spec)
            again = walk(fs, root, found.path)
            assert again.node is found.node
            assert again.path == found.path

    def test_full_path_strings(self, fs, root):
        assert walk(fs, root, 'a/b').path == '/a/b/'
        assert walk(fs, root, 'a/b/c.txt').path == '/a/b/c.txt'

    def test_dotdot_moves_to_parent(self, fs, root):
        assert walk(fs, root, 'a/b/..').node is fs.root.get('a')
        assert walk(fs, root, 'a/b/../f.txt').node is fs.root.get('a').get('f.txt')

    def test_dotdot_at_root_is_noop(self, fs, root):
        assert walk(fs, root, '..').node is fs.root
        assert walk(fs, root, '../../..').path == '/'
        assert walk(fs, root, '../a').node is fs.root.get('a')

    def test_relative_to_cwd(self, fs, root):
        b = walk(fs, root, 'a/b')
        assert walk(fs, b, 'c.txt').path == '/a/b/c.txt'
        assert walk(fs, b, '../f.txt').path == '/a/f.txt'
        assert walk(fs, b, '/real').path == '/real/'

    def test_missing_entry(self, fs, root):
        with pytest.raises(NotFoundError) as exc:
            walk(fs, root, 'a/missing/x')
        assert exc.value.path == '/a/missing'

    def test_descending_through_file(self, fs, root):
        with pytest.raises(NotADirectoryError) as exc:
            walk(fs, root, 'a/f.txt/x')
        assert exc.value.path == '/a/f.txt'

    def test_walk_keeps_final_symlink(self, fs, root):
        assert walk(fs, root, 'alias').is_link()

    def test_find_resolves_final_symlink(self, fs, root):
        found = find(fs, root, 'alias')
        assert found.node is fs.root.get('real')
        assert found.path == '/real/'

    def test_intermediate_symlink(self, fs, root):
        found = find(fs, root, 'alias/inner.txt')
        assert found.path == '/real/inner.txt'
        assert found.node.text == 'I'

    def test_absolute_symlink_target(self, fs, root):
        assert find(fs, root, 'abs/c.txt').path == '/a/b/c.txt'

    def test_try_find(self, fs, root):
        assert try_find(fs, root, 'nope') is None
        assert try_find(fs, root, 'a/f.txt').node.text == 'F'


class TestSymlinks:
    """Test lazy symlink resolution and its depth bound."""

    @staticmethod
    def chain(length):
        entries = {'target.txt': 'end'}
        for i in range(1, length + 1):
            nxt = f'link{i + 1}' if i < length else 'target.txt'
            entries[f'link{i}'] = Symlink(nxt)
        return FileSystem.from_dict(entries)

    def test_chain_of_twenty_resolves(self):
        fs = self.chain(20)
        root = make_root(fs)
        resolved = resolve_symlink(fs, lget(root, 'link1'))
        assert resolved.node.text == 'end'

    def test_chain_of_twenty_one_is_cyclic(self):
        fs = self.chain(21)
        root = make_root(fs)
        with pytest.raises(CyclicReferenceError):
            resolve_symlink(fs, lget(root, 'link1'))

    def test_self_reference_is_cyclic(self):
        fs = FileSystem.from_dict({'loop': Symlink('loop')})
        with pytest.raises(CyclicReferenceError):
            find(fs, make_root(fs), 'loop')

    def test_recursive_intermediate_reference_is_cyclic(self):
        fs = FileSystem.from_dict({'a': Symlink('a/x')})
        with pytest.raises(CyclicReferenceError):
            find(fs, make_root(fs), 'a')

    def test_target_relative_to_link_parent(self):
        fs = FileSystem.from_dict({'d': {'t.txt': 'T', 'l': Symlink('t.txt')}})
        assert find(fs, make_root(fs), 'd/l').path == '/d/t.txt'

    def test_dangling_symlink(self, fs, root):
        with pytest.raises(NotFoundError):
            resolve_symlink(fs, lget(root, 'dangling'))
        assert get(fs, root, 'dangling') is None

    def test_resolution_follows_tree_changes(self, fs, root):
        before = find(fs, root, 'alias')
        replacement = Directory()
        fs.root.add('real', replacement, overwrite=True)
        after = find(fs, root, 'alias')
        assert before.node is not replacement
        assert after.node is replacement


class TestAncestorSearch:
    """Test nearest-first lookup through parent directories."""

    @pytest.fixture
    def tree(self):
        return FileSystem.from_dict({
            'node_modules': {'top': {}},
            'pkg': {
                'node_modules': {'inner': {}},
                'src': {'deep': {}},
            },
        })

    def test_nearest_first(self, tree):
        root = make_root(tree)
        deep = walk(tree, root, 'pkg/src/deep')
        found = [p.path for p in ancestor_search(tree, deep, 'node_modules')]
        assert found == ['/pkg/node_modules/', '/node_modules/']

    def test_is_lazy(self, tree):
        root = make_root(tree)
        deep = walk(tree, root, 'pkg/src/deep')
        results = ancestor_search(tree, deep, 'node_modules')
        assert next(results).path == '/pkg/node_modules/'

    def test_find_closest(self, tree):
        root = make_root(tree)
        assert find_closest(tree, root, 'missing') is None
        assert find_closest(tree, walk(tree, root, 'pkg/src'), 'node_modules').path == \
            '/pkg/node_modules/'


class TestEnsureChildDir:
    """Test creating directories in place."""

    def test_creates_then_reuses(self, fs, root):
        created = ensure_child_dir(fs, root, 'node_modules')
        assert created.path == '/node_modules/'
        again = ensure_child_dir(fs, root, 'node_modules')
        assert again.node is created.node

    def test_existing_file_is_not_a_directory(self, fs, root):
        a = walk(fs, root, 'a')
        with pytest.raises(NotADirectoryError):
            ensure_child_dir(fs, a, 'f.txt')
