"""
Stream bridge.

Relays yt-dlp's stdout to a consumer as a lazy byte stream. The chosen format
is paired with the best audio track ("<id>+ba") and written to stdout ("-o -")
so nothing is stored on the server.

Session lifecycle:
    CREATED → PROCESS_SPAWNED → STREAMING → COMPLETED | ABORTED

Bytes are only read when the consumer asks for the next chunk, so a slow
client slows the pipe down instead of growing a buffer.
"""

import logging

from .errors import InvalidInput, StreamAborted, StreamStartFailed
from .models import SessionState, StreamSession
from .process import spawn
from .resolver import PERMISSIVE_FLAGS

logger = logging.getLogger(__name__)

DEFAULT_CHUNK_SIZE = 64 * 1024

# "<id>+ba" always muxes two inputs, and only Matroska takes any codec pair
# (avc1 video with opus audio under --prefer-free-formats) and can be
# written to a pipe
MERGE_CONTAINER = "mkv"


def format_selector(encoding_id):
    # yt-dlp picks the best audio ('ba') and muxes it with the chosen format
    return f"{encoding_id}+ba"


class DownloadStream:
    """
    Lazy, finite, single-use iterator of byte chunks.

    next_chunk() returns bytes, or None once the stream is exhausted.
    Raises StreamAborted if yt-dlp fails after the stream was opened.
    close() before completion tears the process down.
    """

    def __init__(self, session, chunk_size=DEFAULT_CHUNK_SIZE, terminate_grace=5.0, logger=logger):
        self.session = session
        self.chunk_size = chunk_size
        self.terminate_grace = terminate_grace
        self.logger = logger

    @property
    def state(self):
        return self.session.state

    @property
    def bytes_sent(self):
        return self.session.bytes_sent

    def _read(self, channel):
        read1 = getattr(channel, "read1", None)
        if read1 is not None:
            return read1(self.chunk_size)
        return channel.read(self.chunk_size)

    def _abort(self, message):
        self.session.process.terminate(self.terminate_grace)
        self.session.advance(SessionState.ABORTED)
        self.logger.error(
            f"Stream aborted for {self.session.source_url} "
            f"(format {self.session.encoding_id}) after {self.session.bytes_sent} bytes: {message}"
        )
        raise StreamAborted(message)

    def next_chunk(self):
        session = self.session
        if session.state.terminal:
            return None
        if session.state is SessionState.PROCESS_SPAWNED:
            session.advance(SessionState.STREAMING)

        handle = session.process
        try:
            chunk = self._read(handle.output)
        except (OSError, ValueError) as e:
            self._abort(f"output channel error: {e}")

        if chunk:
            session.bytes_sent += len(chunk)
            return chunk

        # End of data: the exit code decides between success and failure
        code = handle.wait()
        if code != 0:
            tail = handle.stderr_tail()
            self._abort(tail[-1] if tail else f"yt-dlp exited with status {code}")

        handle.terminate(self.terminate_grace)
        session.advance(SessionState.COMPLETED)
        self.logger.info(f"Stream completed for {session.source_url}: {session.bytes_sent} bytes")
        return None

    def __iter__(self):
        return self

    def __next__(self):
        chunk = self.next_chunk()
        if chunk is None:
            raise StopIteration
        return chunk

    def close(self):
        """Consumer is gone. Idempotent."""
        session = self.session
        if session.state.terminal:
            return
        self.logger.info(
            f"Client disconnected from {session.source_url} after {session.bytes_sent} bytes, "
            "terminating yt-dlp"
        )
        session.process.terminate(self.terminate_grace)
        session.advance(SessionState.ABORTED)

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()


class Bridge:
    """Opens one yt-dlp download process per call."""

    def __init__(
        self,
        ytdlp_bin="yt-dlp",
        process_factory=spawn,
        chunk_size=DEFAULT_CHUNK_SIZE,
        terminate_grace=5.0,
        logger=logger,
    ):
        self.ytdlp_bin = ytdlp_bin
        self.process_factory = process_factory
        self.chunk_size = chunk_size
        self.terminate_grace = terminate_grace
        self.logger = logger
        self.container_ext = MERGE_CONTAINER

    def build_command(self, url, encoding_id):
        return [
            self.ytdlp_bin,
            "-f", format_selector(encoding_id),
            "-o", "-",
            "--no-part",
            "--merge-output-format", self.container_ext,
            *PERMISSIVE_FLAGS,
            # "--" keeps a URL starting with "-" from being read as an option
            "--", url,
        ]

    def open_download_stream(self, url, encoding_id):
        if not url or not encoding_id:
            raise InvalidInput("URL and Format ID are required")

        session = StreamSession(source_url=url, encoding_id=encoding_id)
        handle = self.process_factory(self.build_command(url, encoding_id))

        try:
            handle.start()
        except OSError as e:
            session.advance(SessionState.ABORTED)
            self.logger.error(f"Could not start {self.ytdlp_bin} for {url}: {e}")
            raise StreamStartFailed(f"{self.ytdlp_bin} is not installed or not in PATH") from e

        session.process = handle
        session.advance(SessionState.PROCESS_SPAWNED)

        if handle.output is None:
            handle.terminate(self.terminate_grace)
            session.advance(SessionState.ABORTED)
            self.logger.error(f"No output channel from {self.ytdlp_bin} for {url}")
            raise StreamStartFailed("Failed to get download stream.")

        self.logger.info(f"Streaming {url} (format {format_selector(encoding_id)})")
        return DownloadStream(
            session,
            chunk_size=self.chunk_size,
            terminate_grace=self.terminate_grace,
            logger=self.logger,
        )
