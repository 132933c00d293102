"""Pytest configuration and fixtures."""

from pathlib import Path

import pytest  # pyright: ignore[reportMissingImports]


@pytest.fixture(scope="session")  # pyright: ignore[reportUnknownMemberType, reportUntypedFunctionDecorator]
def anyio_backend() -> str:
    """Use asyncio backend only (trio is not installed)."""
    return "asyncio"


@pytest.fixture(autouse=True)  # pyright: ignore[reportUnknownMemberType, reportUntypedFunctionDecorator]
def isolated_lock_dir(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Keep tests away from the real ~/.agent-observer lock file."""
    lock_dir = tmp_path / "agent-observer"
    monkeypatch.setenv("AGENT_OBSERVER_LOCK_DIR", str(lock_dir))
    return lock_dir
