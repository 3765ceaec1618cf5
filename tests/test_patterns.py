"""Tests for files/patterns.py module."""

import os
from pathlib import Path

import pytest

from imagepack.files.patterns import (
    PathPattern,
    expand_braces,
    find,
    find_dirs,
    matches,
)


def touch(path: Path) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text("x")
    return path


class TestExpandBraces:
    """Tests for brace alternation expansion."""

    def test_plain_pattern(self):
        """A pattern without braces expands to itself."""
        assert expand_braces("bin/*") == ["bin/*"]

    def test_simple_group(self):
        """Each alternative is combined with prefix and suffix."""
        assert expand_braces("a{b,c}d") == ["abd", "acd"]

    def test_nested_group(self):
        """Nested groups are expanded recursively."""
        assert expand_braces("{a,b{c,d}}") == ["a", "bc", "bd"]

    def test_multiple_groups(self):
        """Several groups produce the cross product in order."""
        assert expand_braces("{a,b}{1,2}") == ["a1", "a2", "b1", "b2"]

    def test_empty_group_has_no_alternatives(self):
        """``{}`` yields nothing, so the whole pattern vanishes."""
        assert expand_braces("x{}y") == []

    def test_empty_alternative(self):
        """``{a,}`` yields ``a`` and the empty string."""
        assert expand_braces("x{a,}") == ["xa", "x"]

    def test_unbalanced_braces_are_literal(self):
        """Braces without a partner are kept as-is."""
        assert expand_braces("a{b") == ["a{b"]
        assert expand_braces("a}{b") == ["a}{b"]

    def test_duplicates_removed(self):
        """Identical expansions appear once."""
        assert expand_braces("{a,a}") == ["a"]


class TestMatches:
    """Tests for segment-wise matching."""

    @pytest.mark.parametrize(
        ("pattern", "path", "expected"),
        [
            ("**/*.exe", "bin/app.exe", True),
            ("**/*.exe", "app.exe", True),
            ("*.exe", "bin/app.exe", False),
            ("bin/*", "bin", False),
            ("bin/*", "bin/app", True),
            ("dir/**", "dir", True),
            ("dir/**", "dir/a/b", True),
            ("a/**/b", "a/b", True),
            ("a/**/b", "a/x/y/b", True),
            ("a/**/b", "a/x/y/c", False),
            ("bin/java?", "bin/javac", True),
            ("bin/java?", "bin/java", False),
            ("*.EXE", "app.exe", False),
            ("*", ".hidden", True),
            ("lib/[abc]*.so", "lib/b1.so", True),
        ],
    )
    def test_match_table(self, pattern, path, expected):
        """Glob semantics per segment, ``**`` across segments."""
        assert matches(pattern, path) is expected

    def test_leading_slash_ignored(self):
        """Patterns are relative even with a leading slash."""
        assert matches("/bin/*", "bin/app")

    def test_brace_alternatives(self):
        """Any alternative may match."""
        pattern = PathPattern("{**/*.exe,**/platform}")
        assert pattern.matches("bin/app.exe")
        assert pattern.matches("platform")
        assert not pattern.matches("bin/app")

    def test_empty_group_never_matches(self):
        """A pattern with ``{}`` matches nothing."""
        assert not matches("{}", "")
        assert not matches("a{}", "a")

    def test_sequence_input(self):
        """Paths may be given as segment sequences."""
        assert PathPattern("bin/*").matches(("bin", "app"))


class TestMaxDepth:
    """Tests for PathPattern.max_depth."""

    def test_bounded(self):
        assert PathPattern("bin/*").max_depth == 2

    def test_deepest_alternative(self):
        assert PathPattern("{a,b/c/d}").max_depth == 3

    def test_globstar_unbounded(self):
        assert PathPattern("{a,**/x}").max_depth is None


class TestFind:
    """Tests for find()."""

    @pytest.fixture
    def tree(self, tmp_path: Path) -> Path:
        root = tmp_path / "tree"
        touch(root / "bin" / "app")
        touch(root / "bin" / "app.exe")
        touch(root / "bin" / "app64.exe")
        touch(root / "platform" / "lib" / "boot.jar")
        touch(root / "platform" / "lib" / "win.exe")
        touch(root / "readme.txt")
        return root

    def test_globstar_search(self, tree: Path):
        """Results are sorted by relative path segments."""
        found = find(tree, "**/*.exe")
        assert [p.relative_to(tree).as_posix() for p in found] == [
            "bin/app.exe",
            "bin/app64.exe",
            "platform/lib/win.exe",
        ]

    def test_directories_are_candidates(self, tree: Path):
        """Directories match as well as files."""
        assert find(tree, "platform") == [tree / "platform"]

    def test_root_is_not_a_candidate(self, tree: Path):
        """The root itself is never returned."""
        assert tree not in find(tree, "**")

    def test_several_patterns(self, tree: Path):
        """Entries matching any pattern are returned once."""
        found = find(tree, "readme.txt", "*.txt")
        assert found == [tree / "readme.txt"]

    def test_missing_root(self, tmp_path: Path):
        """A non-directory root yields no matches."""
        assert find(tmp_path / "missing", "**") == []

    def test_no_patterns(self, tree: Path):
        assert find(tree) == []

    @pytest.mark.skipif(os.name != "posix", reason="requires symlinks")
    def test_symlinked_dirs_not_followed(self, tree: Path, tmp_path: Path):
        """Symlinked directories are reported but not descended into."""
        outside = tmp_path / "outside"
        touch(outside / "hidden.exe")
        (tree / "link").symlink_to(outside, target_is_directory=True)
        found = find(tree, "**/*.exe", "link")
        assert tree / "link" in found
        assert tree / "link" / "hidden.exe" not in found


class TestFindDirs:
    """Tests for find_dirs()."""

    def test_finds_nested_root(self, tmp_path: Path):
        """The directory holding all sub-patterns is found."""
        app = tmp_path / "x" / "app"
        touch(app / "bin" / "app")
        touch(app / "etc" / "app.conf")
        assert find_dirs(tmp_path, 5, "bin/*", "etc/*.conf") == [app]

    def test_root_can_qualify(self, tmp_path: Path):
        """Depth 0 is the search root itself."""
        touch(tmp_path / "bin" / "java")
        assert find_dirs(tmp_path, 5, "bin/java*") == [tmp_path]

    def test_all_patterns_required(self, tmp_path: Path):
        """A directory matching only some sub-patterns does not qualify."""
        touch(tmp_path / "app" / "bin" / "app")
        assert find_dirs(tmp_path, 5, "bin/*", "etc/*.conf") == []

    def test_empty_bin_does_not_qualify(self, tmp_path: Path):
        """``bin/*`` needs an entry inside bin."""
        (tmp_path / "app" / "bin").mkdir(parents=True)
        assert find_dirs(tmp_path, 5, "bin/*") == []

    def test_depth_limit(self, tmp_path: Path):
        """Directories at max_depth are checked, deeper ones are not."""
        deep = tmp_path / "a" / "b" / "c"
        touch(deep / "bin" / "java")
        assert find_dirs(tmp_path, 2, "bin/java") == []
        assert find_dirs(tmp_path, 3, "bin/java") == [deep]

    def test_qualified_dirs_not_descended(self, tmp_path: Path):
        """Candidates nested inside a qualified directory are not reported."""
        touch(tmp_path / "bin" / "java")
        touch(tmp_path / "inner" / "bin" / "java")
        assert find_dirs(tmp_path, 5, "bin/java") == [tmp_path]

    def test_siblings_all_reported(self, tmp_path: Path):
        """Independent candidates are all returned, sorted."""
        touch(tmp_path / "one" / "bin" / "java")
        touch(tmp_path / "two" / "bin" / "java")
        assert find_dirs(tmp_path, 5, "bin/java") == [
            tmp_path / "one",
            tmp_path / "two",
        ]
