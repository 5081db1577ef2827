"""
Structured log calls must not reuse LogRecord attribute names.

``logging`` raises ``KeyError`` when an ``extra`` key collides with a
LogRecord attribute (``created``, ``name``, ``module``...), which turns a
log line into a failed operation.  Every literal ``extra={...}`` in the
packages is scanned via AST.
"""

import ast
import logging
from pathlib import Path

import pytest

_ROOT = Path(__file__).resolve().parents[2]
_PACKAGES = ("inventory_kernel", "inventory_config", "inventory_services")

_RESERVED = frozenset(vars(logging.LogRecord("", 0, "", 0, "", (), None))) | {"message", "asctime"}


def _python_files() -> list[Path]:
    return sorted(p for package in _PACKAGES for p in (_ROOT / package).rglob("*.py"))


def _extra_keys(path: Path) -> list[tuple[int, str]]:
    """Return (line_number, key) for every string key of a literal ``extra`` dict."""
    tree = ast.parse(path.read_text(), filename=str(path))
    results: list[tuple[int, str]] = []
    for node in ast.walk(tree):
        if not isinstance(node, ast.Call):
            continue
        for keyword in node.keywords:
            if keyword.arg == "extra" and isinstance(keyword.value, ast.Dict):
                for key in keyword.value.keys:
                    if isinstance(key, ast.Constant) and isinstance(key.value, str):
                        results.append((key.lineno, key.value))
    return results


class TestLogExtras:
    def test_packages_found(self):
        assert len(_python_files()) > 20

    @pytest.mark.parametrize("path", _python_files(), ids=lambda p: str(p.relative_to(_ROOT)))
    def test_no_reserved_keys(self, path):
        clashes = [f"{path.name}:{line} {key!r}" for line, key in _extra_keys(path) if key in _RESERVED]

        assert clashes == []

    def test_reserved_set_covers_known_clash(self):
        assert "created" in _RESERVED
