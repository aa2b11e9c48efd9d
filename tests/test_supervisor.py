"""
Tests for the Process Supervisor.

The end-to-end tests run the real supervisor entry point in a subprocess and
read its named pipes the way a log collector would.
"""

import io
import os
import signal
import subprocess
import sys
import time
from pathlib import Path

import psutil
import pytest

from yardmaster.errors import SupervisorError
from yardmaster.local.supervisor import LogProxy, Supervisor, ensure_fifo, main

pytestmark = pytest.mark.skipif(sys.platform == "win32", reason="needs named pipes and POSIX signals")

SUPERVISOR_MODULE = "yardmaster.local.script_entry.supervisor"


def start_supervisor(run_dir: Path, supervisor_env, *command: str) -> subprocess.Popen:
    env = dict(os.environ, **supervisor_env)
    return subprocess.Popen(
        [sys.executable, "-m", SUPERVISOR_MODULE, str(run_dir), *command],
        stdout=subprocess.PIPE,
        stderr=subprocess.PIPE,
        env=env,
    )


def read_pid(supervisor: subprocess.Popen) -> int:
    line = supervisor.stdout.readline()
    assert line.strip().isdigit(), f"expected a pid line, got {line!r}"
    return int(line)


class BrokenStream:
    def readline(self, limit=-1):
        raise OSError("read failed")


def read_fifo(path: Path, lines: int, timeout: float = 10) -> bytes:
    """Reads from a named pipe until `lines` newlines arrived or the timeout passed."""
    deadline = time.monotonic() + timeout
    while not path.exists():
        assert time.monotonic() < deadline, f"{path} was never created"
        time.sleep(0.02)

    fd = os.open(path, os.O_RDONLY | os.O_NONBLOCK)
    data = b""
    try:
        while data.count(b"\n") < lines and time.monotonic() < deadline:
            try:
                chunk = os.read(fd, 65536)
            except BlockingIOError:
                chunk = b""
            if chunk:
                data += chunk
            else:
                time.sleep(0.02)
    finally:
        os.close(fd)
    return data


class TestSupervisorProcess:

    def test_echo_hello(self, tmp_path, supervisor_env):
        supervisor = start_supervisor(tmp_path / "run", supervisor_env, "echo", "hello")
        pid = read_pid(supervisor)
        assert pid > 0
        assert read_fifo(tmp_path / "run" / "out", lines=1) == b"hello\n"
        assert supervisor.wait(timeout=15) == 0
        assert supervisor.stdout.read() == b""

    def test_creates_both_pipes(self, tmp_path, supervisor_env):
        supervisor = start_supervisor(tmp_path / "run", supervisor_env, "true")
        read_pid(supervisor)
        assert supervisor.wait(timeout=15) == 0
        for name in ("out", "err"):
            assert (tmp_path / "run" / name).is_fifo()

    def test_exit_code_is_propagated(self, tmp_path, supervisor_env):
        supervisor = start_supervisor(tmp_path / "run", supervisor_env, "sh", "-c", "exit 3")
        read_pid(supervisor)
        assert supervisor.wait(timeout=15) == 3

    def test_stderr_goes_to_err_pipe(self, tmp_path, supervisor_env):
        supervisor = start_supervisor(tmp_path / "run", supervisor_env, "sh", "-c", "echo oops >&2")
        read_pid(supervisor)
        assert read_fifo(tmp_path / "run" / "err", lines=1) == b"oops\n"
        assert supervisor.wait(timeout=15) == 0

    def test_long_line_is_truncated(self, tmp_path, supervisor_env):
        script = "import sys; sys.stdout.write('x' * 10000 + '\\nnext\\n')"
        supervisor = start_supervisor(tmp_path / "run", supervisor_env, sys.executable, "-c", script)
        read_pid(supervisor)
        data = read_fifo(tmp_path / "run" / "out", lines=2)
        assert data == b"x" * 8192 + b"\n" + b"next\n"
        assert supervisor.wait(timeout=15) == 0

    def test_max_line_length_from_environment(self, tmp_path, supervisor_env):
        env = dict(supervisor_env, YARDMASTER_MAX_LINE_LENGTH="4")
        supervisor = start_supervisor(tmp_path / "run", env, "sh", "-c", "echo abcdefgh; echo ij")
        read_pid(supervisor)
        assert read_fifo(tmp_path / "run" / "out", lines=2) == b"abcd\nij\n"
        assert supervisor.wait(timeout=15) == 0

    def test_spawn_failure_prints_no_pid(self, tmp_path, supervisor_env):
        supervisor = start_supervisor(tmp_path / "run", supervisor_env, "/nonexistent/program")
        assert supervisor.wait(timeout=15) == 1
        assert supervisor.stdout.read() == b""
        assert b"nonexistent" in supervisor.stderr.read()

    def test_usage_error(self, tmp_path, supervisor_env):
        supervisor = start_supervisor(tmp_path / "run", supervisor_env)
        assert supervisor.wait(timeout=15) == 1
        assert supervisor.stdout.read() == b""
        assert b"usage" in supervisor.stderr.read()

    def test_sigterm_is_forwarded(self, tmp_path, supervisor_env):
        script = (
            "import signal, sys, time\n"
            "signal.signal(signal.SIGTERM, lambda *a: sys.exit(7))\n"
            "print('ready', flush=True)\n"
            "time.sleep(30)\n"
        )
        supervisor = start_supervisor(tmp_path / "run", supervisor_env, sys.executable, "-c", script)
        read_pid(supervisor)
        assert read_fifo(tmp_path / "run" / "out", lines=1) == b"ready\n"
        supervisor.send_signal(signal.SIGTERM)
        assert supervisor.wait(timeout=15) == 7

    def test_two_signals_in_a_row_are_both_delivered(self, tmp_path, supervisor_env):
        script = (
            "import signal, sys, time\n"
            "seen = []\n"
            "def handler(signum, frame):\n"
            "    seen.append(signum)\n"
            "    if len(seen) == 2: sys.exit(len(seen))\n"
            "signal.signal(signal.SIGINT, handler)\n"
            "signal.signal(signal.SIGTERM, handler)\n"
            "print('ready', flush=True)\n"
            "while True: time.sleep(0.1)\n"
        )
        supervisor = start_supervisor(tmp_path / "run", supervisor_env, sys.executable, "-c", script)
        read_pid(supervisor)
        try:
            assert read_fifo(tmp_path / "run" / "out", lines=1) == b"ready\n"
            supervisor.send_signal(signal.SIGINT)
            supervisor.send_signal(signal.SIGTERM)
            assert supervisor.wait(timeout=15) == 2
        finally:
            if supervisor.poll() is None:
                supervisor.kill()

    def test_child_killed_by_signal_exits_with_failure_code(self, tmp_path, supervisor_env):
        supervisor = start_supervisor(tmp_path / "run", supervisor_env, "sleep", "30")
        pid = read_pid(supervisor)
        psutil.Process(pid).kill()
        assert supervisor.wait(timeout=15) == 1


class TestLogProxy:

    def records(self, data: bytes, max_line_length: int = 8):
        proxy = LogProxy("out", io.BytesIO(data), Path("unused"), max_line_length, on_fatal=lambda e: None)
        result = []
        while True:
            record = proxy.next_record()
            if record is None:
                return result
            result.append(record)

    def test_lines(self):
        assert self.records(b"a\nb\n") == [b"a\n", b"b\n"]

    def test_empty_lines_are_kept(self):
        assert self.records(b"\n\n") == [b"\n", b"\n"]

    def test_carriage_return_is_dropped(self):
        assert self.records(b"a\r\nb\n") == [b"a\n", b"b\n"]

    def test_final_line_without_newline(self):
        assert self.records(b"a\ntail") == [b"a\n", b"tail\n"]

    def test_exactly_max_length(self):
        assert self.records(b"01234567\nx\n") == [b"01234567\n", b"x\n"]

    def test_one_byte_over(self):
        assert self.records(b"012345678\nx\n") == [b"01234567\n", b"x\n"]

    def test_oversized_line_does_not_merge_with_next(self):
        assert self.records(b"0123456789abcdef" * 100 + b"\nnext\n") == [b"01234567\n", b"next\n"]

    def test_oversized_final_line(self):
        assert self.records(b"0123456789abcdef") == [b"01234567\n"]

    def test_run_writes_one_record_per_line(self, tmp_path):
        # A regular file stands in for the pipe; the framing is the same.
        target = tmp_path / "target"
        target.touch()
        errors = []
        proxy = LogProxy("out", io.BytesIO(b"one\n" + b"y" * 20 + b"\ntwo"), target, 8, errors.append)
        proxy.start()
        proxy.join(timeout=5)
        assert errors == []
        assert target.read_bytes() == b"one\nyyyyyyyy\ntwo\n"

    def test_read_error_is_fatal(self, tmp_path):
        errors = []
        proxy = LogProxy("err", BrokenStream(), tmp_path / "unused", 8, errors.append)
        proxy.start()
        proxy.join(timeout=5)
        assert len(errors) == 1
        assert "read failed" in str(errors[0])


class BrokenErrSupervisor(Supervisor):
    """Reads the child's stderr through a stream that always fails."""

    def _start_proxies(self) -> None:
        proxy = LogProxy("err", BrokenStream(), self.run_dir / "err", self.max_line_length, self._on_fatal)
        proxy.start()
        self.proxies.append(proxy)


class BrokenStdout(io.StringIO):
    def write(self, text):
        raise BrokenPipeError("reader went away")


class TestSupervisorFailures:

    def test_stream_read_failure_kills_child(self, tmp_path):
        supervisor = BrokenErrSupervisor(tmp_path / "run", "sleep", ["30"])
        started = time.monotonic()
        assert supervisor.run() == 1
        assert time.monotonic() - started < 10
        assert supervisor.child.returncode == -signal.SIGKILL
        assert not psutil.pid_exists(supervisor.child.pid)

    def test_unwritable_pid_handshake_kills_child(self, tmp_path, monkeypatch):
        supervisor = Supervisor(tmp_path / "run", "sleep", ["30"])
        monkeypatch.setattr(sys, "stdout", BrokenStdout())
        with pytest.raises(SupervisorError, match="reporting pid"):
            supervisor.run()
        assert supervisor.child.returncode == -signal.SIGKILL
        assert not psutil.pid_exists(supervisor.child.pid)


class TestEnsureFifo:

    def test_idempotent(self, tmp_path):
        path = tmp_path / "out"
        ensure_fifo(path)
        inode = os.stat(path).st_ino
        ensure_fifo(path)
        assert path.is_fifo()
        assert os.stat(path).st_ino == inode

    def test_regular_file_in_the_way(self, tmp_path):
        path = tmp_path / "out"
        path.write_text("not a pipe")
        with pytest.raises(FileExistsError):
            ensure_fifo(path)


class TestMain:

    def test_usage(self, capsys):
        assert main([]) == 1
        assert "usage" in capsys.readouterr().err

    def test_unusable_runtime_directory(self, tmp_path, capsys, monkeypatch):
        monkeypatch.setattr("yardmaster.local.supervisor.supervisor.setup_logging", lambda *args, **kwargs: None)
        blocker = tmp_path / "file"
        blocker.write_text("")
        assert main([str(blocker / "run"), "true"]) == 1
        assert capsys.readouterr().out == ""
