"""Hook process executor."""

from __future__ import annotations

import json
import logging
import os
import shlex
import signal
import subprocess
import threading
import time
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import IO
from uuid import uuid4

from .context import context_payload
from .errors import CannotSpawnError, InvalidWorkingDirectoryError
from .types import HookContext, HookDefinition, HookExecutionResult
from .utils import render_argv, render_template


logger = logging.getLogger(__name__)

DEFAULT_MAX_OUTPUT_BYTES = 64 * 1024
_READ_CHUNK = 8192
_POSIX = os.name == "posix"


class _BoundedReader(threading.Thread):
    """Drains a pipe, keeping at most ``limit`` bytes."""

    def __init__(self, stream: IO[bytes], limit: int, name: str) -> None:
        super().__init__(name=name, daemon=True)
        self.stream = stream
        self.limit = limit
        self.buffer = bytearray()
        self.truncated = False

    def run(self) -> None:
        try:
            while True:
                chunk = self.stream.read1(_READ_CHUNK)
                if not chunk:
                    break
                room = self.limit - len(self.buffer)
                if room > 0:
                    self.buffer.extend(chunk[:room])
                if len(chunk) > room:
                    self.truncated = True
        except (OSError, ValueError):
            pass
        finally:
            try:
                self.stream.close()
            except OSError:
                pass

    def text(self) -> str:
        return self.buffer.decode("utf-8", errors="replace")


def _feed_stdin(stream: IO[bytes] | None, data: bytes) -> None:
    if stream is None:
        return
    try:
        stream.write(data)
        stream.flush()
    except (BrokenPipeError, OSError, ValueError):
        # process exited without reading its input
        pass
    finally:
        try:
            stream.close()
        except (BrokenPipeError, OSError):
            pass


def _kill_group(pid: int) -> None:
    try:
        os.killpg(pid, signal.SIGKILL)
    except (ProcessLookupError, PermissionError, OSError):
        pass


def _kill(process: subprocess.Popen[bytes]) -> None:
    if process.poll() is not None:
        return
    if _POSIX:
        _kill_group(process.pid)
    if process.poll() is None:
        process.kill()


@dataclass
class HookExecutor:
    max_output_bytes: int = DEFAULT_MAX_OUTPUT_BYTES
    poll_interval: float = 0.05
    reader_join_timeout: float = 2.0

    def expand(self, definition: HookDefinition, context: HookContext) -> list[str]:
        if definition.shell:
            return ["/bin/sh", "-c", render_template(definition.command, context, quote=True)]
        try:
            argv = render_argv(definition.command, context)
        except ValueError as exc:
            raise CannotSpawnError(f"hook {definition.id} 指令無法解析：{exc}") from exc
        if not argv:
            raise CannotSpawnError(f"hook {definition.id} 指令為空")
        return argv

    def _resolve_cwd(self, definition: HookDefinition) -> str | None:
        if definition.working_directory is None:
            return None
        path = Path(definition.working_directory)
        if not path.is_dir():
            raise InvalidWorkingDirectoryError(f"hook {definition.id} 工作目錄不存在：{path}")
        return str(path)

    def execute(
        self,
        definition: HookDefinition,
        context: HookContext,
        timeout: float | None,
        *,
        cancel_event: threading.Event | None = None,
    ) -> HookExecutionResult:
        cwd = self._resolve_cwd(definition)
        argv = self.expand(definition, context)
        command_text = shlex.join(argv)
        started_at = datetime.now().astimezone()
        start = time.monotonic()
        try:
            process = subprocess.Popen(
                argv,
                cwd=cwd,
                stdin=subprocess.PIPE,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                start_new_session=_POSIX,
            )
        except (OSError, ValueError) as exc:
            raise CannotSpawnError(f"hook {definition.id} 無法啟動：{exc}") from exc

        stdout_reader = _BoundedReader(process.stdout, self.max_output_bytes, f"itemhooks-stdout-{process.pid}")
        stderr_reader = _BoundedReader(process.stderr, self.max_output_bytes, f"itemhooks-stderr-{process.pid}")
        stdout_reader.start()
        stderr_reader.start()
        stdin_payload = json.dumps(context_payload(context), ensure_ascii=False).encode("utf-8")
        writer = threading.Thread(
            target=_feed_stdin,
            args=(process.stdin, stdin_payload),
            name=f"itemhooks-stdin-{process.pid}",
            daemon=True,
        )
        writer.start()

        timed_out = False
        cancelled = False
        deadline = start + timeout if timeout else None
        while True:
            try:
                process.wait(timeout=self.poll_interval)
                break
            except subprocess.TimeoutExpired:
                pass
            if cancel_event is not None and cancel_event.is_set():
                cancelled = True
                _kill(process)
                process.wait()
                break
            if deadline is not None and time.monotonic() >= deadline:
                timed_out = True
                _kill(process)
                process.wait()
                break

        if _POSIX:
            # children left behind by the hook still hold the pipes
            _kill_group(process.pid)
        writer.join(timeout=self.reader_join_timeout)
        stdout_reader.join(timeout=self.reader_join_timeout)
        stderr_reader.join(timeout=self.reader_join_timeout)
        duration = time.monotonic() - start

        if timed_out:
            logger.warning("Hook %s 執行逾時（%ss），已終止", definition.id, timeout)
        elif cancelled:
            logger.warning("Hook %s 因操作取消而終止", definition.id)

        return HookExecutionResult(
            definition_id=definition.id,
            exit_status=int(process.returncode if process.returncode is not None else -1),
            stdout=stdout_reader.text(),
            stderr=stderr_reader.text(),
            duration=duration,
            timed_out=timed_out,
            stdout_truncated=stdout_reader.truncated,
            stderr_truncated=stderr_reader.truncated,
            cancelled=cancelled,
            command=command_text,
            execution_id=uuid4().hex,
            started_at=started_at,
        )
