"""
Process handles.

A handle wraps one external process whose stdout is consumed as a byte
source. The resolver and the stream bridge only talk to this interface, so a
different tool or a fake process can be dropped in without touching them.

Design rules:
- stdout is the data channel, stderr is drained in the background
- SIGTERM → SIGKILL escalation for cancellation
- Signals go to the whole process group (yt-dlp forks ffmpeg to mux)
"""

import logging
import os
import signal
import subprocess
import threading
from collections import deque

logger = logging.getLogger(__name__)

STDERR_TAIL_LINES = 20
_POSIX = os.name == "posix"


class ProcessHandle:
    """Interface: start, output, wait/poll (exit signal), terminate."""

    def start(self):
        raise NotImplementedError

    @property
    def output(self):
        """Binary stdout channel, or None if it never attached."""
        raise NotImplementedError

    def poll(self):
        raise NotImplementedError

    def wait(self, timeout=None):
        raise NotImplementedError

    def terminate(self, grace=5.0):
        raise NotImplementedError

    def stderr_tail(self):
        return []


class SubprocessHandle(ProcessHandle):
    """subprocess.Popen backed handle with a background stderr drain."""

    def __init__(self, cmd, bufsize=10**6):
        self.cmd = list(cmd)
        self.bufsize = bufsize
        self._proc = None
        self._stderr_lines = deque(maxlen=STDERR_TAIL_LINES)
        self._stderr_thread = None

    def start(self):
        # Raises OSError (FileNotFoundError, PermissionError) when spawning fails
        self._proc = subprocess.Popen(
            self.cmd,
            stdin=subprocess.DEVNULL,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            bufsize=self.bufsize,
            start_new_session=_POSIX,
        )
        self._stderr_thread = threading.Thread(target=self._drain_stderr, daemon=True)
        self._stderr_thread.start()
        logger.debug(f"Spawned PID {self._proc.pid}: {self.cmd[0]}")
        return self

    def _drain_stderr(self):
        stream = self._proc.stderr
        try:
            for line in iter(stream.readline, b""):
                text = line.decode("utf-8", "ignore").strip()
                if text:
                    self._stderr_lines.append(text)
        except (OSError, ValueError):
            pass
        finally:
            stream.close()

    @property
    def pid(self):
        return self._proc.pid if self._proc else None

    @property
    def output(self):
        return self._proc.stdout if self._proc else None

    def poll(self):
        return self._proc.poll() if self._proc else None

    def wait(self, timeout=None):
        code = self._proc.wait(timeout=timeout)
        if self._stderr_thread is not None:
            self._stderr_thread.join(timeout=1)
        return code

    def _signal(self, sig):
        try:
            if _POSIX:
                os.killpg(self._proc.pid, sig)
            else:
                self._proc.send_signal(sig)
        except ProcessLookupError:
            pass  # Already gone

    def terminate(self, grace=5.0):
        """SIGTERM, then SIGKILL if the process outlives the grace period."""
        if self._proc is None:
            return None
        if self._proc.poll() is None:
            logger.info(f"Sending SIGTERM to PID {self._proc.pid}")
            self._signal(signal.SIGTERM)
            try:
                self._proc.wait(timeout=grace)
            except subprocess.TimeoutExpired:
                logger.warning(f"PID {self._proc.pid} did not terminate, sending SIGKILL")
                self._signal(signal.SIGKILL if _POSIX else signal.SIGTERM)
                self._proc.wait()
        if self._proc.stdout is not None:
            self._proc.stdout.close()
        return self._proc.returncode

    def stderr_tail(self):
        return list(self._stderr_lines)


def spawn(cmd):
    """Default process factory."""
    return SubprocessHandle(cmd)
