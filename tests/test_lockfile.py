"""Unit tests for the server lock file and lifespan integration."""

import asyncio
import contextlib
import json
import os
import tempfile
import unittest
from pathlib import Path
from unittest.mock import MagicMock

from fastapi.testclient import TestClient

from agent_observer import __version__
from agent_observer.config import Settings
from agent_observer.lockfile import read_lock_file, remove_lock_file, write_lock_file
from agent_observer.server import create_app, write_lock_when_listening


class TestLockFile(unittest.TestCase):
    """Test lock file read/write helpers."""

    def setUp(self) -> None:
        """Set up test fixtures."""
        self.temp_dir = tempfile.TemporaryDirectory()
        self.lock_file = Path(self.temp_dir.name) / "nested" / "server.lock"

    def tearDown(self) -> None:
        """Clean up after tests."""
        self.temp_dir.cleanup()

    def test_write_and_read(self) -> None:
        lock = write_lock_file(self.lock_file, 51234)

        self.assertEqual(lock.pid, os.getpid())
        data = json.loads(self.lock_file.read_text(encoding="utf-8"))
        self.assertEqual(data, {"pid": os.getpid(), "port": 51234, "version": __version__})
        self.assertEqual(read_lock_file(self.lock_file), lock)

    def test_read_missing(self) -> None:
        self.assertIsNone(read_lock_file(self.lock_file))

    def test_read_invalid(self) -> None:
        self.lock_file.parent.mkdir(parents=True)
        self.lock_file.write_text("{broken", encoding="utf-8")

        self.assertIsNone(read_lock_file(self.lock_file))

    def test_remove_is_idempotent(self) -> None:
        write_lock_file(self.lock_file, 1)

        remove_lock_file(self.lock_file)
        remove_lock_file(self.lock_file)

        self.assertFalse(self.lock_file.exists())


class TestLifespanLockFile(unittest.TestCase):
    """Test that the app removes its lock file on shutdown."""

    def test_lock_not_written_by_app_startup(self) -> None:
        with tempfile.TemporaryDirectory() as temp_dir:
            settings = Settings(write_lock_file=True, lock_dir=Path(temp_dir))
            app = create_app(settings)

            with TestClient(app):
                self.assertFalse(settings.lock_file.exists())

    def test_own_lock_removed_on_shutdown(self) -> None:
        with tempfile.TemporaryDirectory() as temp_dir:
            settings = Settings(write_lock_file=True, lock_dir=Path(temp_dir))
            app = create_app(settings)

            with TestClient(app):
                write_lock_file(settings.lock_file, 40404)

            self.assertFalse(settings.lock_file.exists())

    def test_lock_of_other_server_is_kept(self) -> None:
        with tempfile.TemporaryDirectory() as temp_dir:
            settings = Settings(write_lock_file=True, lock_dir=Path(temp_dir))
            app = create_app(settings)

            with TestClient(app):
                settings.lock_file.write_text(json.dumps({"pid": os.getpid() + 1, "port": 1, "version": "x"}), encoding="utf-8")

            self.assertTrue(settings.lock_file.exists())


class TestWriteLockWhenListening(unittest.IsolatedAsyncioTestCase):
    """Test that the lock file appears only once uvicorn is listening."""

    async def asyncSetUp(self) -> None:
        self.temp_dir = tempfile.TemporaryDirectory()
        self.lock_file = Path(self.temp_dir.name) / "server.lock"
        self.server = MagicMock()
        self.server.started = False

    async def asyncTearDown(self) -> None:
        self.temp_dir.cleanup()

    async def test_waits_for_server_started(self) -> None:
        serving = asyncio.create_task(asyncio.sleep(10))
        writer = asyncio.create_task(write_lock_when_listening(self.server, serving, self.lock_file, 40404, poll_interval=0.01))

        await asyncio.sleep(0.05)
        self.assertFalse(self.lock_file.exists())

        self.server.started = True
        self.assertTrue(await asyncio.wait_for(writer, timeout=1))
        lock = read_lock_file(self.lock_file)
        assert lock is not None
        self.assertEqual(lock.port, 40404)
        self.assertEqual(lock.pid, os.getpid())

        serving.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await serving

    async def test_no_lock_when_server_exits_before_listening(self) -> None:
        async def fail_startup() -> None:
            return None

        serving = asyncio.create_task(fail_startup())

        written = await asyncio.wait_for(write_lock_when_listening(self.server, serving, self.lock_file, 40404, poll_interval=0.01), timeout=1)

        self.assertFalse(written)
        self.assertFalse(self.lock_file.exists())


if __name__ == "__main__":
    unittest.main()
