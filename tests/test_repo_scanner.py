"""Tests for featuremap.repo_scanner."""

from __future__ import annotations

from pathlib import Path

import pytest

from featuremap.repo_scanner import RepoScanner, build_ignore_rule, parse_ignore_lines, should_ignore
from tests._fixtures.repo_builder import RepoBuilder


def _relative(root: Path, files: list[Path]) -> list[str]:
    return [file.relative_to(root.resolve()).as_posix() for file in files]


def test_scan_selects_sources_and_known_filenames(repo_builder: RepoBuilder) -> None:
    repo_builder.write(
        {
            "src/app.py": "print('hi')\n",
            "src/view.tsx": "export const View = () => null;\n",
            "infra/Dockerfile": "FROM python:3.11-slim\n",
            "assets/logo.png": "binary",
            "node_modules/pkg/index.js": "module.exports = {};\n",
            ".venv/lib/site.py": "print('nope')\n",
            "web/bundle.min.js": "x\n",
        }
    )

    files = repo_builder.scan()

    assert _relative(repo_builder.root, files) == [
        "infra/Dockerfile",
        "src/app.py",
        "src/view.tsx",
    ]
    assert all(file.is_absolute() for file in files)


def test_scan_honours_gitignore_with_negation(repo_builder: RepoBuilder) -> None:
    repo_builder.write(
        {
            ".gitignore": "generated/\n*.log.txt\n!keep.log.txt\n/root_only.py\n",
            "generated/api.py": "x = 1\n",
            "notes.log.txt": "x\n",
            "keep.log.txt": "x\n",
            "root_only.py": "x = 1\n",
            "pkg/root_only.py": "x = 1\n",
        }
    )

    files = _relative(repo_builder.root, repo_builder.scan())

    assert "generated/api.py" not in files
    assert "notes.log.txt" not in files
    assert "keep.log.txt" in files
    assert "root_only.py" not in files
    assert "pkg/root_only.py" in files
    assert ".gitignore" in files


def test_scan_with_explicit_extensions_only(repo_builder: RepoBuilder) -> None:
    repo_builder.write({"main.go": "package main\n", "a.py": "x = 1\n", "Makefile": "all:\n"})

    scanner = RepoScanner(extensions=[".go"], filenames=[])
    files = _relative(repo_builder.root, scanner.scan(repo_builder.root))

    assert files == ["main.go"]


def test_scan_skips_requested_paths_and_extra_excludes(repo_builder: RepoBuilder) -> None:
    repo_builder.write(
        {"a.py": "x\n", "repo-features.md": "# old\n", "scratch/b.py": "x\n"}
    )
    scanner = RepoScanner(exclude_paths=["scratch/"])

    files = scanner.scan(repo_builder.root, skip=[repo_builder.root / "repo-features.md"])

    assert _relative(repo_builder.root, files) == ["a.py"]


def test_scan_rejects_missing_directory(tmp_path: Path) -> None:
    missing = tmp_path / "missing"
    with pytest.raises(FileNotFoundError) as excinfo:
        RepoScanner().scan(missing)
    assert str(missing) in str(excinfo.value)


def test_scan_rejects_files(tmp_path: Path) -> None:
    target = tmp_path / "file.py"
    target.write_text("x = 1\n", encoding="utf-8")
    with pytest.raises(NotADirectoryError):
        RepoScanner().scan(target)


def test_directory_only_rule_does_not_match_files() -> None:
    rules = parse_ignore_lines(["build/"])
    assert should_ignore("build", True, rules)
    assert not should_ignore("build", False, rules)
    assert should_ignore("src/build", True, rules)


def test_build_ignore_rule_parses_flags() -> None:
    rule = build_ignore_rule("/docs/api/")
    assert rule is not None
    assert rule.anchored and rule.directory_only and rule.has_slash
    assert rule.pattern == "docs/api"
    assert build_ignore_rule("   ") is None
