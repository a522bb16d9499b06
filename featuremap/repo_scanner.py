"""Repository scanning: builds the ordered file inventory for a run."""

from __future__ import annotations

import os
from dataclasses import dataclass
from fnmatch import fnmatchcase
from pathlib import Path
from typing import Iterable, Iterator, List, Sequence

from .config import DEFAULT_EXTENSIONS, DEFAULT_FILENAMES
from .logging import get_logger

_DEFAULT_IGNORES: tuple[str, ...] = (
    "node_modules/",
    "bower_components/",
    "vendor/",
    "venv/",
    ".venv/",
    "env/",
    "__pycache__/",
    ".tox/",
    "target/",
    "packages/",
    ".gradle/",
    ".git/",
    "dist/",
    "build/",
    "out/",
    "*.min.js",
    "android/",
    "ios/",
    ".next/",
    "nextjs/",
    "coverage/",
    "tmp/",
    "temp/",
    ".expo/",
)


@dataclass
class IgnoreRule:
    """Represents an ignore rule parsed from .gitignore or configuration."""

    pattern: str
    directory_only: bool
    anchored: bool
    negate: bool
    has_slash: bool

    def matches(self, rel_path: str, is_dir: bool) -> bool:
        if not self.pattern:
            return False

        if self.anchored or self.has_slash:
            if is_dir or not self.directory_only:
                if fnmatchcase(rel_path, self.pattern):
                    return True
            return self.directory_only and rel_path.startswith(f"{self.pattern}/")

        parts = rel_path.split("/")
        # Directory-only rules never match the leaf segment of a file path.
        candidates = parts if is_dir or not self.directory_only else parts[:-1]
        return any(fnmatchcase(part, self.pattern) for part in candidates)


def build_ignore_rule(pattern: str, negate: bool = False) -> IgnoreRule | None:
    pattern = pattern.strip()
    if not pattern:
        return None

    directory_only = pattern.endswith("/")
    if directory_only:
        pattern = pattern[:-1]

    anchored = pattern.startswith("/")
    if anchored:
        pattern = pattern[1:]

    has_slash = "/" in pattern
    return IgnoreRule(
        pattern=pattern,
        directory_only=directory_only,
        anchored=anchored,
        negate=negate,
        has_slash=has_slash,
    )


def parse_ignore_lines(lines: Iterable[str]) -> List[IgnoreRule]:
    rules: List[IgnoreRule] = []
    for raw_line in lines:
        line = raw_line.strip()
        if not line or line.startswith("#"):
            continue
        negate = line.startswith("!")
        if negate:
            line = line[1:]
        rule = build_ignore_rule(line, negate=negate)
        if rule is not None:
            rules.append(rule)
    return rules


def load_ignore_rules(root: Path, extra_patterns: Sequence[str] = ()) -> List[IgnoreRule]:
    """Return default, .gitignore and configured rules in precedence order."""
    rules = parse_ignore_lines(_DEFAULT_IGNORES)
    gitignore = root / ".gitignore"
    try:
        rules.extend(parse_ignore_lines(gitignore.read_text(encoding="utf-8").splitlines()))
    except FileNotFoundError:
        pass
    except (OSError, UnicodeDecodeError) as exc:
        get_logger("scanner").warning("Could not read %s: %s", gitignore, exc)
    rules.extend(parse_ignore_lines(extra_patterns))
    return rules


def should_ignore(rel_path: str, is_dir: bool, rules: Sequence[IgnoreRule]) -> bool:
    ignored = False
    for rule in rules:
        if rule.matches(rel_path, is_dir):
            ignored = not rule.negate
    return ignored


def _extension_of(filename: str) -> str:
    if "." not in filename:
        return ""
    return filename.rsplit(".", 1)[-1]


class RepoScanner:
    """Walks the repository and returns the files worth analysing."""

    def __init__(
        self,
        *,
        extensions: Sequence[str] = DEFAULT_EXTENSIONS,
        filenames: Sequence[str] = DEFAULT_FILENAMES,
        exclude_paths: Sequence[str] = (),
    ) -> None:
        self.extensions = {ext.lstrip(".") for ext in extensions}
        self.filenames = set(filenames)
        self.exclude_paths = list(exclude_paths)
        self.logger = get_logger("scanner")

    def scan(self, root: str | Path, *, skip: Iterable[Path] = ()) -> List[Path]:
        """Return sorted absolute paths of matching, non-ignored files under ``root``."""
        root_path = Path(root).expanduser().resolve()
        if not root_path.exists():
            raise FileNotFoundError(f"Repository path not found: {root}")
        if not root_path.is_dir():
            raise NotADirectoryError(f"Repository path is not a directory: {root}")

        rules = load_ignore_rules(root_path, self.exclude_paths)
        skipped = {Path(path).resolve() for path in skip}
        files = [
            path
            for path in self._iter_files(root_path, rules)
            if self._is_selected(path.name) and path not in skipped
        ]
        files.sort()
        self.logger.debug("Scanner selected %d files under %s", len(files), root_path)
        return files

    def _is_selected(self, filename: str) -> bool:
        if filename in self.filenames:
            return True
        return _extension_of(filename) in self.extensions

    @staticmethod
    def _iter_files(root: Path, rules: Sequence[IgnoreRule]) -> Iterator[Path]:
        for dirpath, dirnames, filenames in os.walk(root):
            current_dir = Path(dirpath)
            rel_dir = current_dir.relative_to(root).as_posix() if current_dir != root else ""

            kept_dirs = []
            for name in sorted(dirnames):
                rel_path = f"{rel_dir}/{name}" if rel_dir else name
                if should_ignore(rel_path, True, rules):
                    continue
                kept_dirs.append(name)
            dirnames[:] = kept_dirs

            for filename in filenames:
                rel_path = f"{rel_dir}/{filename}" if rel_dir else filename
                if should_ignore(rel_path, False, rules):
                    continue
                yield current_dir / filename


__all__ = [
    "IgnoreRule",
    "RepoScanner",
    "build_ignore_rule",
    "load_ignore_rules",
    "parse_ignore_lines",
    "should_ignore",
]
