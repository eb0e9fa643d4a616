import io
import json
import shlex
import sys
import tempfile
import unittest
from contextlib import redirect_stderr, redirect_stdout
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parents[1] / "src"))

import yaml

from itemhooks import cli


class CliTests(unittest.TestCase):
    def setUp(self) -> None:
        self._temp = tempfile.TemporaryDirectory()
        self.root = Path(self._temp.name)
        self.data_dir = self.root / "home"
        self.project_dir = self.root / "project"
        (self.project_dir / ".itemhooks").mkdir(parents=True)
        self.data_dir.mkdir()

    def tearDown(self) -> None:
        self._temp.cleanup()

    def _write_project_hooks(self, hooks: list[dict]) -> None:
        (self.project_dir / ".itemhooks" / "config.yaml").write_text(
            yaml.safe_dump({"hooks": hooks}, allow_unicode=True),
            encoding="utf-8",
        )

    def _run(self, *args: str) -> tuple[int, str, str]:
        stdout = io.StringIO()
        stderr = io.StringIO()
        code = 0
        argv = ["--data-dir", str(self.data_dir), "--project", str(self.project_dir), *args]
        with redirect_stdout(stdout), redirect_stderr(stderr):
            try:
                cli.main(argv)
            except SystemExit as exc:
                code = int(exc.code or 0)
        return code, stdout.getvalue(), stderr.getvalue()

    def test_list_without_hooks(self) -> None:
        code, output, _ = self._run("hooks", "list")
        self.assertEqual(code, 0)
        self.assertIn("目前沒有任何 hook。", output)

    def test_list_shows_declaration_order(self) -> None:
        self._write_project_hooks(
            [
                {"id": "lint", "pattern": "issues/**", "operation": "issue.create", "phase": "pre", "command": "lint {{target_path}}"},
                {"id": "notify", "pattern": "**", "phase": "post", "command": "notify", "enabled": False},
            ]
        )
        code, output, _ = self._run("hooks", "list")
        self.assertEqual(code, 0)
        lines = output.strip().splitlines()
        self.assertTrue(lines[0].startswith("lint\tpre:issue.create:issues/**\t啟用"))
        self.assertTrue(lines[1].startswith("notify\tpost:*:**\t停用"))

    def test_check_reports_invalid_entries_and_logs(self) -> None:
        self._write_project_hooks(
            [
                {"id": "ok", "pattern": "**", "phase": "pre", "command": "true"},
                {"id": "broken", "pattern": "a/**/b/**", "phase": "pre", "command": "true"},
            ]
        )
        code, output, _ = self._run("hooks", "check")
        self.assertEqual(code, 1)
        self.assertIn("#2（broken）", output)

        log_path = self.data_dir / "logs" / "itemhooks.log"
        entries = [json.loads(line) for line in log_path.read_text(encoding="utf-8").splitlines() if line.strip()]
        self.assertTrue(any(entry["logger"] == "itemhooks.hooks.loader" and entry["level"] == "ERROR" for entry in entries))

    def test_check_single_file(self) -> None:
        hooks_file = self.root / "hooks.yaml"
        hooks_file.write_text(yaml.safe_dump({"hooks": [{"pattern": "**", "phase": "pre", "command": "true"}]}), encoding="utf-8")
        code, output, _ = self._run("hooks", "check", "--file", str(hooks_file))
        self.assertEqual(code, 0)
        self.assertIn("共 1 個", output)

    def test_run_blocked_pre_hook_and_history(self) -> None:
        deny = shlex.join([sys.executable, "-c", "import sys; sys.stderr.write('需要標題'); sys.exit(1)"])
        self._write_project_hooks(
            [{"id": "deny", "pattern": "issues/**", "operation": "issue.create", "phase": "pre", "command": deny}]
        )
        code, output, errors = self._run(
            "hooks", "run", "--phase", "pre", "--operation", "issue.create", "--target", "issues/7", "--meta", "branch=main"
        )
        self.assertEqual(code, 1)
        self.assertIn("deny：exit 1", output)
        self.assertIn("操作被阻擋", errors)
        self.assertIn("需要標題", errors)

        code, output, _ = self._run("hooks", "history", "--item-type", "issue", "--limit", "5")
        self.assertEqual(code, 0)
        rows = output.strip().splitlines()
        self.assertEqual(len(rows), 1)
        self.assertIn("阻擋", rows[0])
        execution_id = rows[0].split("\t")[0]

        code, output, _ = self._run("hooks", "show", execution_id)
        self.assertEqual(code, 0)
        record = yaml.safe_load(output)
        self.assertEqual(record["hook_id"], "deny")
        self.assertTrue(record["blocked_operation"])

    def test_run_without_matches(self) -> None:
        code, output, _ = self._run("hooks", "run", "--phase", "post", "--operation", "doc.update", "--target", "docs/a.md")
        self.assertEqual(code, 0)
        self.assertIn("沒有符合的 hook。", output)

    def test_run_rejects_wildcard_operation(self) -> None:
        code, _, errors = self._run("hooks", "run", "--phase", "pre", "--operation", "issue.*", "--target", "issues/1")
        self.assertEqual(code, 1)
        self.assertIn("發生錯誤", errors)

    def test_config_set_get_and_show(self) -> None:
        code, output, _ = self._run("config", "set", "runner.default_timeout_s", "12")
        self.assertEqual(code, 0)
        self.assertIn("已更新設定", output)

        code, output, _ = self._run("config", "get", "runner.default_timeout_s")
        self.assertEqual(output.strip(), "12")

        code, output, _ = self._run("config", "show")
        shown = yaml.safe_load(output)
        self.assertEqual(shown["runner"]["default_timeout_s"], {"value": 12, "source": "project"})
        self.assertEqual(shown["history"]["file"]["source"], "default")


if __name__ == "__main__":
    unittest.main()
