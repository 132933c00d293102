"""Unit tests for AgentRegistry."""

import unittest
from unittest.mock import MagicMock, patch

from agent_observer.models import AgentStatus, StatusReport
from agent_observer.registry import AgentRegistry


def make_report(agent_id: str = "agent-1", status: str = "running", **extra: object) -> StatusReport:
    payload: dict[str, object] = {"agentId": agent_id, "status": status, "projectName": "my-project", **extra}
    return StatusReport.from_payload(payload)


class TestAgentRegistryUpsert(unittest.TestCase):
    """Tests for registry upsert semantics."""

    def setUp(self) -> None:
        """Set up test fixtures."""
        self.registry = AgentRegistry()

    def test_first_report_creates_record(self) -> None:
        result = self.registry.upsert(make_report())

        self.assertTrue(result.created)
        self.assertEqual(len(self.registry), 1)
        self.assertEqual(result.record.agent_id, "agent-1")
        self.assertEqual(result.record.status, AgentStatus.RUNNING)

    def test_second_report_updates_in_place(self) -> None:
        self.registry.upsert(make_report())
        result = self.registry.upsert(make_report(status="idle"))

        self.assertFalse(result.created)
        self.assertEqual(len(self.registry), 1)
        self.assertEqual(self.registry.get("agent-1").status, AgentStatus.IDLE)  # type: ignore[union-attr]

    def test_report_replaces_all_fields(self) -> None:
        """Test that optional fields missing from a later report are dropped."""
        self.registry.upsert(make_report(cwd="/a", client="claude-code"))
        self.registry.upsert(make_report())

        record = self.registry.get("agent-1")
        assert record is not None
        self.assertIsNone(record.cwd)
        self.assertIsNone(record.client)

    @patch("agent_observer.registry.now_ms")
    def test_timestamp_refreshed_on_report(self, mock_now: MagicMock) -> None:
        mock_now.side_effect = [1000, 2000]
        self.registry.upsert(make_report())
        self.registry.upsert(make_report())

        self.assertEqual(self.registry.get("agent-1").timestamp, 2000)  # type: ignore[union-attr]

    def test_label_preserved_when_omitted(self) -> None:
        self.registry.upsert(make_report(label="frontend"))
        self.registry.upsert(make_report(status="idle"))

        self.assertEqual(self.registry.get("agent-1").label, "frontend")  # type: ignore[union-attr]

    def test_label_cleared_by_empty_string(self) -> None:
        self.registry.upsert(make_report(label="frontend"))
        self.registry.upsert(make_report(label=""))

        self.assertIsNone(self.registry.get("agent-1").label)  # type: ignore[union-attr]

    def test_same_pid_evicts_ghost(self) -> None:
        """Test that a new agent reusing a pid evicts the old record."""
        self.registry.upsert(make_report("old", pid=4242))
        result = self.registry.upsert(make_report("new", pid=4242))

        self.assertEqual([ghost.agent_id for ghost in result.evicted], ["old"])
        self.assertIsNone(self.registry.get("old"))
        self.assertIsNotNone(self.registry.get("new"))
        self.assertEqual(len(self.registry), 1)

    def test_same_agent_same_pid_is_not_evicted(self) -> None:
        self.registry.upsert(make_report(pid=4242))
        result = self.registry.upsert(make_report(status="idle", pid=4242))

        self.assertEqual(result.evicted, [])
        self.assertEqual(len(self.registry), 1)

    def test_records_without_pid_never_collide(self) -> None:
        self.registry.upsert(make_report("a"))
        result = self.registry.upsert(make_report("b"))

        self.assertEqual(result.evicted, [])
        self.assertEqual(len(self.registry), 2)


class TestAgentRegistryMutations(unittest.TestCase):
    """Tests for label patches and removal."""

    def setUp(self) -> None:
        """Set up test fixtures."""
        self.registry = AgentRegistry()
        self.record = self.registry.upsert(make_report(pid=10)).record

    def test_set_label_keeps_timestamp(self) -> None:
        before = self.record.timestamp
        record = self.registry.set_label("agent-1", "backend")

        assert record is not None
        self.assertEqual(record.label, "backend")
        self.assertEqual(record.timestamp, before)

    def test_set_label_empty_clears(self) -> None:
        self.registry.set_label("agent-1", "backend")
        record = self.registry.set_label("agent-1", "")

        self.assertIsNone(record.label)  # type: ignore[union-attr]

    def test_set_label_unknown_agent(self) -> None:
        self.assertIsNone(self.registry.set_label("unknown", "x"))

    def test_remove(self) -> None:
        removed = self.registry.remove("agent-1")

        self.assertIs(removed, self.record)
        self.assertEqual(self.registry.list_all(), [])

    def test_remove_unknown(self) -> None:
        self.assertIsNone(self.registry.remove("unknown"))

    def test_remove_record_only_if_current(self) -> None:
        """Test that a replaced record is not removed by a stale reference."""
        self.registry.upsert(make_report(status="idle", pid=10))

        self.assertFalse(self.registry.remove_record(self.record))
        self.assertIn("agent-1", self.registry)

    def test_evict_by_pid(self) -> None:
        evicted = self.registry.evict_by_pid(10)

        self.assertEqual([record.agent_id for record in evicted], ["agent-1"])
        self.assertEqual(len(self.registry), 0)

    def test_list_all_is_a_copy(self) -> None:
        records = self.registry.list_all()
        records.clear()

        self.assertEqual(len(self.registry), 1)


if __name__ == "__main__":
    unittest.main()
