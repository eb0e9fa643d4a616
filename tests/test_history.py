import json
import sys
import tempfile
import unittest
from datetime import datetime, timedelta, timezone
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parents[1] / "src"))

from itemhooks.hooks.context import build_context
from itemhooks.hooks.history import HookExecutionFilter, HookExecutionRecord, HookHistory
from itemhooks.hooks.pattern import parse
from itemhooks.hooks.types import HookDefinition, HookExecutionResult, HookOperation, OperationSelector, Phase


BASE_TIME = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


def _record(execution_id: str, minutes: int, *, phase: str = "pre", item_type: str = "issue", operation: str = "create", item_id: str | None = "1") -> HookExecutionRecord:
    return HookExecutionRecord(
        id=execution_id,
        timestamp=(BASE_TIME + timedelta(minutes=minutes)).isoformat(),
        hook_id="hook",
        hook_pattern="pre:*:**",
        command="true",
        exit_code=0,
        stdout="",
        stderr="",
        duration_ms=3,
        blocked_operation=False,
        phase=phase,
        item_type=item_type,
        operation=operation,
        item_id=item_id,
        target_path="issues/1",
        timed_out=False,
    )


class HookHistoryTests(unittest.TestCase):
    def test_newest_first_with_filters_and_limit(self) -> None:
        with tempfile.TemporaryDirectory() as temp_dir:
            history = HookHistory(Path(temp_dir) / "hook_executions.jsonl")
            history.append(_record("old", 0))
            history.append(_record("doc", 5, item_type="doc"))
            history.append(_record("new", 10))
            history.append(_record("post", 15, phase="post", operation="delete", item_id="2"))

            self.assertEqual([record.id for record in history.list_executions()], ["post", "new", "doc", "old"])
            issue_only = history.list_executions(HookExecutionFilter(item_type="issue", phase="pre"))
            self.assertEqual([record.id for record in issue_only], ["new", "old"])
            limited = history.list_executions(HookExecutionFilter(limit=2))
            self.assertEqual([record.id for record in limited], ["post", "new"])
            by_item = history.list_executions(HookExecutionFilter(item_id="2", operation="delete"))
            self.assertEqual([record.id for record in by_item], ["post"])

    def test_get_execution_and_unreadable_lines(self) -> None:
        with tempfile.TemporaryDirectory() as temp_dir:
            path = Path(temp_dir) / "hook_executions.jsonl"
            history = HookHistory(path)
            history.append(_record("first", 0))
            with path.open("a", encoding="utf-8") as handle:
                handle.write("not json\n\n[1, 2]\n")
            history.append(_record("second", 1))

            self.assertEqual(history.get_execution("second").id, "second")
            self.assertIsNone(history.get_execution("missing"))
            self.assertEqual(len(history.list_executions()), 2)

    def test_missing_file_is_empty(self) -> None:
        with tempfile.TemporaryDirectory() as temp_dir:
            history = HookHistory.for_project(Path(temp_dir))
            self.assertEqual(history.list_executions(), [])
            self.assertEqual(history.path, Path(temp_dir) / ".itemhooks" / "hook_executions.jsonl")

    def test_record_from_timed_out_result(self) -> None:
        definition = HookDefinition(
            id="slow",
            pattern=parse("issues/**"),
            operation=OperationSelector.parse("issue.*"),
            phase=Phase.PRE,
            command="sleep 10",
        )
        context = build_context(HookOperation.parse("issue.move"), Phase.PRE, "issues/3", item_id="3", now=BASE_TIME)
        result = HookExecutionResult(
            definition_id="slow",
            exit_status=-9,
            duration=1.25,
            timed_out=True,
            command="sleep 10",
            execution_id="exec-1",
            started_at=BASE_TIME,
        )
        record = HookExecutionRecord.from_result(definition, context, result, blocked_operation=True)
        self.assertIsNone(record.exit_code)
        self.assertEqual(record.duration_ms, 1250)
        self.assertEqual(record.hook_pattern, "pre:issue.*:issues/**")
        self.assertEqual(record.operation, "move")
        payload = json.loads(json.dumps(record.to_dict()))
        self.assertEqual(HookExecutionRecord.from_dict(payload), record)


if __name__ == "__main__":
    unittest.main()
