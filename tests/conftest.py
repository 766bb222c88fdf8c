"""Pytest configuration shared by every suite.

What:
  Establish project import paths and define fixtures that apply a canned runtime
  configuration to every test.

Why:
  Tests must import the in-repo ``mailfetch`` package rather than an installed
  wheel, and the runtime configuration is cached globally. The autouse fixture
  keeps configuration state deterministic between tests.

How:
  Prepend ``mailfetch/src`` to ``sys.path`` when present and point
  ``MAILFETCH_CONFIG_PATH`` at ``tests/data/config.yaml`` while resetting the
  runtime cache before and after each test.

Interfaces:
  :func:`runtime_config` (pytest fixture), ``CONFIG_PATH``.
"""

import sys
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parents[1]
SRC_DIR = PROJECT_ROOT / "mailfetch" / "src"
if SRC_DIR.exists():
    sys.path.insert(0, str(SRC_DIR))

import pytest

from mailfetch.config.loader import reset_runtime_config

CONFIG_PATH = Path(__file__).resolve().parent / "data" / "config.yaml"


@pytest.fixture(autouse=True)
def runtime_config(monkeypatch: pytest.MonkeyPatch):
    """Apply the canned configuration file for every test.

    What:
      Sets ``MAILFETCH_CONFIG_PATH`` to the repository fixture and clears the
      runtime configuration cache before and after each test.

    Args:
      monkeypatch: Pytest helper injected automatically for environment control.
    """

    monkeypatch.setenv("MAILFETCH_CONFIG_PATH", str(CONFIG_PATH))
    reset_runtime_config()
    try:
        yield
    finally:
        reset_runtime_config()
