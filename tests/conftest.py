import importlib
import sys
import textwrap
import types

import pytest

from telecall.bugs import BugReporter, default_reporter
from telecall.registry import CallRegistry


@pytest.fixture(autouse=True)
def clean_default_reporter():
    """The process-wide bug reporter must not leak listeners between tests."""
    default_reporter.clear()
    yield
    default_reporter.clear()


class RecordingReporter(BugReporter):
    """BugReporter that also keeps every FailureDetail it was given."""

    def __init__(self):
        super().__init__()
        self.reports = []
        self.on_bug(self.reports.append)


@pytest.fixture
def reporter():
    return RecordingReporter()


@pytest.fixture
def registry():
    return CallRegistry()


def _build_module(name: str, source: str) -> types.ModuleType:
    module = types.ModuleType(name)
    exec(compile(textwrap.dedent(source), f"<{name}>", "exec"), module.__dict__)
    return module


@pytest.fixture
def make_module():
    """Build a module object from source, as if it had been imported."""
    return _build_module


@pytest.fixture
def module_dir(tmp_path, monkeypatch):
    """
    Directory on sys.path for writing real handler modules.

    Yields a writer: write(name, source) creates <name>.py. Modules imported
    from it are dropped from sys.modules afterwards.
    """
    monkeypatch.syspath_prepend(str(tmp_path))
    monkeypatch.setattr(sys, "dont_write_bytecode", True)
    written = []

    def write(name: str, source: str):
        (tmp_path / f"{name}.py").write_text(textwrap.dedent(source))
        written.append(name)
        importlib.invalidate_caches()

    yield write

    for name in written:
        sys.modules.pop(name, None)
