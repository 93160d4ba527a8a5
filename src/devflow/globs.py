"""Glob patterns compiled once and matched against root-relative paths.

Rules: `*` and `?` stay inside one path segment, `**/` spans zero or more
directories, `{a,b}` is alternation and `[...]` a character class.
"""

from __future__ import annotations

import os
import re
from pathlib import Path
from typing import Iterable, Iterator


_WILDCARDS = "*?[{"


def expand_braces(pattern: str) -> list[str]:
    start = pattern.find("{")
    if start < 0:
        return [pattern]
    depth = 0
    for end in range(start, len(pattern)):
        ch = pattern[end]
        if ch == "{":
            depth += 1
        elif ch == "}":
            depth -= 1
            if depth == 0:
                break
    else:
        # Unbalanced: treat the brace literally.
        return [pattern]
    body = pattern[start + 1 : end]
    options: list[str] = []
    depth = 0
    last = 0
    for i, ch in enumerate(body):
        if ch == "{":
            depth += 1
        elif ch == "}":
            depth -= 1
        elif ch == "," and depth == 0:
            options.append(body[last:i])
            last = i + 1
    options.append(body[last:])
    head, tail = pattern[:start], pattern[end + 1 :]
    out: list[str] = []
    for opt in options:
        out.extend(expand_braces(head + opt + tail))
    return out


def translate(pattern: str) -> str:
    """Translate one brace-free glob into a regex body."""
    i, n = 0, len(pattern)
    parts: list[str] = []
    while i < n:
        ch = pattern[i]
        if pattern.startswith("**", i):
            if pattern.startswith("**/", i):
                parts.append("(?:.*/)?")
                i += 3
            else:
                parts.append(".*")
                i += 2
        elif ch == "*":
            parts.append("[^/]*")
            i += 1
        elif ch == "?":
            parts.append("[^/]")
            i += 1
        elif ch == "[":
            close = pattern.find("]", i + 1)
            if close < 0:
                parts.append(re.escape(ch))
                i += 1
                continue
            body = pattern[i + 1 : close]
            if body.startswith("!"):
                body = "^" + body[1:]
            parts.append("[" + body.replace("\\", "\\\\") + "]")
            i = close + 1
        else:
            parts.append(re.escape(ch))
            i += 1
    return "".join(parts)


def _normalize(pattern: str) -> str:
    pattern = pattern.replace("\\", "/")
    while pattern.startswith("./"):
        pattern = pattern[2:]
    return pattern


def compile_glob(pattern: str) -> re.Pattern:
    alternatives = [translate(p) for p in expand_braces(_normalize(pattern))]
    return re.compile("^(?:" + "|".join(alternatives) + ")$")


def static_prefix(pattern: str) -> str:
    """Directory part of `pattern` before the first wildcard segment."""
    segments = _normalize(pattern).split("/")
    fixed: list[str] = []
    for seg in segments[:-1]:
        if any(ch in seg for ch in _WILDCARDS):
            break
        fixed.append(seg)
    return "/".join(fixed)


class GlobMatcher:
    """A set of patterns compiled into regexes, matched as a union."""

    def __init__(self, patterns: Iterable[str]):
        self.patterns = tuple(patterns)
        if not self.patterns:
            raise ValueError("GlobMatcher needs at least one pattern")
        self._compiled = [compile_glob(p) for p in self.patterns]

    def matches(self, path: str | os.PathLike) -> bool:
        rel = _normalize(Path(path).as_posix())
        return any(rx.match(rel) for rx in self._compiled)

    def __repr__(self) -> str:
        return f"GlobMatcher({list(self.patterns)!r})"


def iter_files(root: Path, patterns: Iterable[str]) -> Iterator[Path]:
    """Yield files under `root` matching any pattern, sorted, without repeats."""
    patterns = list(patterns)
    matcher = GlobMatcher(patterns)
    seen: set[Path] = set()
    for base in sorted({static_prefix(p) for p in patterns}):
        start = root / base if base else root
        if not start.is_dir():
            continue
        found: list[Path] = []
        for dirpath, _, files in os.walk(start):
            for name in files:
                p = Path(dirpath) / name
                rel = p.relative_to(root).as_posix()
                if p not in seen and matcher.matches(rel):
                    seen.add(p)
                    found.append(p)
        yield from sorted(found)
