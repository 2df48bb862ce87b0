"""
Shared fixtures: a scriptable fake process handle and a factory that records
every command it is asked to spawn.
"""

import io
import logging

import pytest

from ytdlp_bridge.process import ProcessHandle


class BrokenChannel(io.RawIOBase):
    """Yields the given chunks, then fails like a broken pipe."""

    def __init__(self, chunks, error):
        super().__init__()
        self._chunks = list(chunks)
        self._error = error

    def readable(self):
        return True

    def read1(self, size=-1):
        if self._chunks:
            return self._chunks.pop(0)
        raise self._error

    read = read1


class FakeProcess(ProcessHandle):
    def __init__(self, cmd, stdout=b"", returncode=0, stderr=(), start_error=None,
                 no_output=False, channel=None):
        self.cmd = cmd
        self._stdout = stdout
        self._returncode = returncode
        self._stderr = list(stderr)
        self._start_error = start_error
        self._no_output = no_output
        self._channel = channel
        self.started = False
        self.terminated = False
        self.exited = False
        self.output_channel = None

    def start(self):
        if self._start_error is not None:
            raise self._start_error
        self.started = True
        if not self._no_output:
            self.output_channel = self._channel or io.BytesIO(self._stdout)
        return self

    @property
    def output(self):
        return self.output_channel

    def poll(self):
        if self.exited or self.terminated:
            return self._returncode if not self.terminated else -15
        return None

    def wait(self, timeout=None):
        self.exited = True
        return self._returncode

    def terminate(self, grace=5.0):
        if not self.exited:
            self.terminated = True
        if self.output_channel is not None:
            self.output_channel.close()
        return self.poll()

    def stderr_tail(self):
        return list(self._stderr)


class FakeFactory:
    def __init__(self, **behaviour):
        self.behaviour = behaviour
        self.spawned = []

    def __call__(self, cmd):
        proc = FakeProcess(cmd, **self.behaviour)
        self.spawned.append(proc)
        return proc

    @property
    def last(self):
        return self.spawned[-1]


@pytest.fixture
def fake_factory():
    """Build a FakeFactory with the given process behaviour."""
    return FakeFactory


@pytest.fixture
def test_logger():
    return logging.getLogger("ytdlp_bridge.tests")


@pytest.fixture
def broken_channel():
    """Build a BrokenChannel from chunks and the error to raise after them."""
    return BrokenChannel
