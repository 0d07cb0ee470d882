#!/usr/bin/env python3
"""
Static smoke-check: mission module public names must be used.

Policy:
- Every module-level constant in `src/missions/models.py` is referenced
  somewhere in `src/` besides its own definition.
- Every public `MissionRepository` method is called from `src/`.
- `pyproject.toml` declares the Python 3.11 floor the service targets.

Run:
  python3 scripts/smoke_missions_deadcode_policy.py
"""

from __future__ import annotations

import ast
import re
import tomllib
from pathlib import Path


def _resolve(path_rel: str) -> Path:
    candidates = [
        Path(__file__).resolve().parents[1] / path_rel,
        Path.cwd() / path_rel,
    ]
    for p in candidates:
        if p.exists():
            return p
    return candidates[0]


SRC_DIR = _resolve("src")
MODELS_FILE = _resolve("src/missions/models.py")
REPOSITORY_FILE = _resolve("src/missions/repository.py")
PYPROJECT_FILE = _resolve("pyproject.toml")

REQUIRED_PYTHON = ">=3.11"


def _module_constants(tree: ast.Module) -> list[str]:
    names: list[str] = []
    for node in tree.body:
        if not isinstance(node, ast.Assign):
            continue
        for target in node.targets:
            if isinstance(target, ast.Name) and target.id.isupper():
                names.append(target.id)
    return names


def _public_methods(tree: ast.Module, class_name: str) -> list[str]:
    for node in tree.body:
        if isinstance(node, ast.ClassDef) and node.name == class_name:
            return [
                item.name
                for item in node.body
                if isinstance(item, (ast.FunctionDef, ast.AsyncFunctionDef)) and not item.name.startswith("_")
            ]
    return []


def _reference_count(name: str, sources: list[str]) -> int:
    pattern = re.compile(rf"\b{re.escape(name)}\b")
    return sum(len(pattern.findall(text)) for text in sources)


def main() -> None:
    for path in (SRC_DIR, MODELS_FILE, REPOSITORY_FILE, PYPROJECT_FILE):
        if not path.exists():
            raise SystemExit(f"ERROR: file not found: {path}")

    sources = [path.read_text(encoding="utf-8") for path in sorted(SRC_DIR.rglob("*.py"))]
    violations: list[str] = []

    models_tree = ast.parse(MODELS_FILE.read_text(encoding="utf-8"))
    for name in _module_constants(models_tree):
        if _reference_count(name, sources) < 2:
            violations.append(f"{MODELS_FILE}: constant `{name}` is defined but never used")

    repository_tree = ast.parse(REPOSITORY_FILE.read_text(encoding="utf-8"))
    methods = _public_methods(repository_tree, "MissionRepository")
    if not methods:
        violations.append(f"{REPOSITORY_FILE}: MissionRepository not found")
    for name in methods:
        calls = re.compile(rf"\.{re.escape(name)}\(")
        if not any(calls.search(text) for text in sources):
            violations.append(f"{REPOSITORY_FILE}: MissionRepository.{name} is never called")

    with PYPROJECT_FILE.open("rb") as fh:
        project = tomllib.load(fh).get("project", {})
    if project.get("requires-python") != REQUIRED_PYTHON:
        violations.append(
            f"{PYPROJECT_FILE}: requires-python must be {REQUIRED_PYTHON!r}, got {project.get('requires-python')!r}"
        )

    if violations:
        raise SystemExit(
            "ERROR: missions dead-code policy violation(s):\n"
            + "\n".join(f"- {v}" for v in violations)
        )

    print("OK: missions dead-code policy smoke passed.")


if __name__ == "__main__":
    main()
