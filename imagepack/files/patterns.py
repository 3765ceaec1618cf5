"""Path pattern matching over directory trees.

This module handles:
- Brace alternation expansion (``{a,b}``, nested groups, empty alternatives)
- Segment-wise glob matching where ``**`` spans zero or more segments
- Flat searches (``find``) returning every matching entry under a root
- Depth-bounded searches (``find_dirs``) for directories that contain
  entries matching a set of sub-patterns

Patterns are always matched against paths relative to the search root,
using ``/`` as separator. Within a segment ``*``, ``?`` and ``[...]`` follow
case-sensitive :func:`fnmatch.fnmatchcase` semantics; names starting with a
dot are not treated specially.

Examples::

    find(image, "{**/*.exe,**/platform}")
    find_dirs(extracted, 5, "bin/*", "etc/*.conf")
"""

from __future__ import annotations

import logging
import os
from collections import deque
from collections.abc import Iterator, Sequence
from fnmatch import fnmatchcase
from pathlib import Path, PurePosixPath

logger = logging.getLogger(__name__)

GLOBSTAR = "**"


def _find_group(pattern: str, start: int = 0) -> tuple[int, int] | None:
    """Locate the first brace group that has a matching close brace."""
    index = pattern.find("{", start)
    while index >= 0:
        depth = 0
        for pos in range(index, len(pattern)):
            char = pattern[pos]
            if char == "{":
                depth += 1
            elif char == "}":
                depth -= 1
                if depth == 0:
                    return index, pos
        # Unbalanced: treat this brace literally and try the next one
        index = pattern.find("{", index + 1)
    return None


def _split_alternatives(body: str) -> list[str]:
    """Split a brace group body on top-level commas."""
    if body == "":
        return []
    parts: list[str] = []
    depth = 0
    current: list[str] = []
    for char in body:
        if char == "{":
            depth += 1
        elif char == "}":
            depth -= 1
        if char == "," and depth == 0:
            parts.append("".join(current))
            current = []
        else:
            current.append(char)
    parts.append("".join(current))
    return parts


def expand_braces(pattern: str) -> list[str]:
    """Expand brace alternation groups into plain glob patterns.

    ``{}`` contributes no alternatives, so a pattern containing it expands
    to an empty list and never matches. ``{a,}`` contributes ``a`` and the
    empty string. Unbalanced braces are kept literally.

    Args:
        pattern: Pattern possibly containing brace groups.

    Returns:
        Expanded patterns in order, without duplicates.
    """
    group = _find_group(pattern)
    if group is None:
        return [pattern]

    open_index, close_index = group
    prefix = pattern[:open_index]
    suffix_expansions = expand_braces(pattern[close_index + 1 :])

    results: list[str] = []
    for alternative in _split_alternatives(pattern[open_index + 1 : close_index]):
        for middle in expand_braces(alternative):
            for suffix in suffix_expansions:
                expanded = prefix + middle + suffix
                if expanded not in results:
                    results.append(expanded)
    return results


def _segments(pattern: str) -> tuple[str, ...]:
    """Split a plain pattern into segments, collapsing repeated ``**``."""
    segments: list[str] = []
    for segment in pattern.split("/"):
        if not segment:
            continue
        if segment == GLOBSTAR and segments and segments[-1] == GLOBSTAR:
            continue
        segments.append(segment)
    return tuple(segments)


def _match_parts(segments: Sequence[str], parts: Sequence[str]) -> bool:
    if not segments:
        return not parts
    head = segments[0]
    if head == GLOBSTAR:
        rest = segments[1:]
        return any(_match_parts(rest, parts[i:]) for i in range(len(parts) + 1))
    if not parts:
        return False
    return fnmatchcase(parts[0], head) and _match_parts(segments[1:], parts[1:])


class PathPattern:
    """A compiled pattern: one segment tuple per brace alternative."""

    def __init__(self, pattern: str) -> None:
        self.pattern = pattern
        self.alternatives = tuple(
            _segments(expanded) for expanded in expand_braces(pattern)
        )

    def __repr__(self) -> str:
        return f"PathPattern({self.pattern!r})"

    @property
    def max_depth(self) -> int | None:
        """Deepest relative path that can match, or None when unbounded."""
        depth = 0
        for segments in self.alternatives:
            if GLOBSTAR in segments:
                return None
            depth = max(depth, len(segments))
        return depth

    def matches(self, relative: str | PurePosixPath | Sequence[str]) -> bool:
        """Check whether a root-relative path matches this pattern."""
        if isinstance(relative, str):
            parts: Sequence[str] = [p for p in relative.split("/") if p]
        elif isinstance(relative, PurePosixPath):
            parts = relative.parts
        else:
            parts = relative
        return any(_match_parts(segments, parts) for segments in self.alternatives)


def matches(pattern: str, relative: str) -> bool:
    """Check a single ``/``-separated relative path against a pattern."""
    return PathPattern(pattern).matches(relative)


def _is_real_dir(path: Path) -> bool:
    return path.is_dir() and not path.is_symlink()


def _children(path: Path) -> list[Path]:
    return sorted(path.iterdir(), key=lambda child: child.name)


def _sort_key(root: Path):
    def key(path: Path) -> tuple[str, ...]:
        return path.relative_to(root).parts

    return key


def find(root: Path, *patterns: str) -> list[Path]:
    """Find every entry below ``root`` matching any of the patterns.

    Both files and directories are candidates; ``root`` itself never is.
    Symlinked directories are reported but not descended into.

    Args:
        root: Directory to search.
        *patterns: Patterns relative to ``root``.

    Returns:
        Matching paths sorted lexically by their root-relative segments.
    """
    root = Path(root)
    if not root.is_dir() or not patterns:
        return []

    compiled = [PathPattern(p) for p in patterns]
    depths = [c.max_depth for c in compiled]
    limit = None if any(d is None for d in depths) else max(depths)

    results: list[Path] = []
    for dirpath, dirnames, filenames in os.walk(root):
        base = Path(dirpath)
        prefix = base.relative_to(root).parts
        for name in dirnames + filenames:
            parts = (*prefix, name)
            if any(c.matches(parts) for c in compiled):
                results.append(base / name)
        if limit is not None and len(prefix) + 1 >= limit:
            dirnames[:] = []

    results.sort(key=_sort_key(root))
    logger.debug("find %s %s: %d match(es)", root, patterns, len(results))
    return results


def _iter_matches(base: Path, segments: tuple[str, ...]) -> Iterator[Path]:
    """Walk only the parts of the tree a pattern can reach."""
    if not segments:
        yield base
        return
    head, rest = segments[0], segments[1:]
    if head == GLOBSTAR:
        yield from _iter_matches(base, rest)
        for child in _children(base):
            if _is_real_dir(child):
                yield from _iter_matches(child, segments)
        return
    for child in _children(base):
        if not fnmatchcase(child.name, head):
            continue
        if not rest:
            yield child
        elif _is_real_dir(child):
            yield from _iter_matches(child, rest)


def _has_match(directory: Path, pattern: PathPattern) -> bool:
    for segments in pattern.alternatives:
        for match in _iter_matches(directory, segments):
            if match != directory:
                return True
    return False


def find_dirs(root: Path, max_depth: int, *sub_patterns: str) -> list[Path]:
    """Find directories containing a match for every sub-pattern.

    The search is breadth-first. ``root`` is depth 0 and is itself a
    candidate; directories at ``max_depth`` are checked but not expanded.
    A qualifying directory is not descended into, so nested candidates
    inside an already qualified directory are not reported.

    Args:
        root: Directory to search.
        max_depth: Maximum candidate depth below ``root``.
        *sub_patterns: Patterns relative to each candidate directory.

    Returns:
        Qualifying directories sorted lexically.
    """
    root = Path(root)
    if not root.is_dir():
        return []

    compiled = [PathPattern(p) for p in sub_patterns]
    results: list[Path] = []
    queue: deque[tuple[Path, int]] = deque([(root, 0)])
    while queue:
        current, depth = queue.popleft()
        if all(_has_match(current, pattern) for pattern in compiled):
            results.append(current)
            continue
        if depth >= max_depth:
            continue
        for child in _children(current):
            if _is_real_dir(child):
                queue.append((child, depth + 1))

    results.sort(key=_sort_key(root))
    logger.debug(
        "find_dirs %s depth=%d %s: %d candidate(s)",
        root,
        max_depth,
        sub_patterns,
        len(results),
    )
    return results


__all__ = ["PathPattern", "expand_braces", "find", "find_dirs", "matches"]
