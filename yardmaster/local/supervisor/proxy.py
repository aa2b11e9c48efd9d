import os
import stat
import logging
import threading
from pathlib import Path
from typing import BinaryIO, Callable, Optional

log = logging.getLogger(__name__)

READ_CHUNK_SIZE = 64 * 1024


def ensure_fifo(path: Path) -> None:
    """
    Creates a named pipe at `path`, reusing one that already exists.

    :raises OSError: If the pipe cannot be created, or something other than a
        pipe is in the way.
    """
    try:
        os.mkfifo(path, 0o600)
        log.debug(f"Created named pipe '{path}'.")
    except FileExistsError:
        if not stat.S_ISFIFO(os.stat(path).st_mode):
            raise FileExistsError(f"'{path}' exists and is not a named pipe")


class LogProxy(threading.Thread):
    """
    Copies one of the child's output streams into a named pipe, line by line.

    Every line becomes exactly one newline-terminated write. Lines longer than
    `max_line_length` bytes are cut at that length and the remainder of the
    line is discarded. The pipe is opened for appending when the first line is
    ready, which blocks until a reader attaches; a reader that goes away makes
    the next write reopen it.
    """

    def __init__(
        self,
        name: str,
        stream: BinaryIO,
        fifo_path: Path,
        max_line_length: int,
        on_fatal: Callable[[Exception], None],
    ) -> None:
        """
        :param name: Stream name ("out" or "err"), used in log messages.
        :param stream: The child's stdout or stderr, opened in binary mode.
        :param fifo_path: The named pipe to write into. Must already exist.
        :param max_line_length: Maximum bytes per record, excluding the newline.
        :param on_fatal: Called with the error if reading or writing fails.
        """
        super().__init__(name=f"proxy-{name}", daemon=True)
        self.stream = stream
        self.fifo_path = fifo_path
        self.max_line_length = max_line_length
        self.on_fatal = on_fatal
        self._fd: Optional[int] = None

    def run(self) -> None:
        try:
            while True:
                record = self.next_record()
                if record is None:
                    break
                self._write(record)
        except OSError as e:
            log.error(f"Proxying {self.name} to '{self.fifo_path}' failed: {e}")
            self.on_fatal(e)
        finally:
            self._close()
            log.debug(f"{self.name} finished.")

    #* --- Reading ---
    def next_record(self) -> Optional[bytes]:
        """
        Reads the next logical line and returns it as a record, or None at EOF.

        The record always ends with exactly one newline. A trailing carriage
        return is dropped, and a final line without a newline is still emitted.
        """
        line = self.stream.readline(self.max_line_length + 1)
        if not line:
            return None

        if line.endswith(b"\n"):
            content = line[:-1]
        elif len(line) > self.max_line_length:
            content = line[:self.max_line_length]
            skipped = self._discard_rest_of_line()
            log.debug(f"Truncated a {len(line) + skipped} byte line on {self.name}.")
        else:
            content = line

        if content.endswith(b"\r"):
            content = content[:-1]
        return content + b"\n"

    def _discard_rest_of_line(self) -> int:
        """Skips input up to and including the next newline. Returns the bytes skipped."""
        skipped = 0
        while True:
            chunk = self.stream.readline(READ_CHUNK_SIZE)
            skipped += len(chunk)
            if not chunk or chunk.endswith(b"\n"):
                return skipped

    #* --- Writing ---
    def _open(self) -> int:
        if self._fd is None:
            # Blocks until a reader has the pipe open.
            self._fd = os.open(self.fifo_path, os.O_WRONLY | os.O_APPEND)
            log.debug(f"Reader attached to '{self.fifo_path}'.")
        return self._fd

    def _close(self) -> None:
        if self._fd is not None:
            try:
                os.close(self._fd)
            except OSError:
                pass
            self._fd = None

    def _write(self, record: bytes) -> None:
        while True:
            fd = self._open()
            try:
                view = memoryview(record)
                while view:
                    written = os.write(fd, view)
                    view = view[written:]
                return
            except BrokenPipeError:
                log.debug(f"Reader detached from '{self.fifo_path}'; reopening.")
                self._close()
