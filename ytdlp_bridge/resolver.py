import json
import logging

from .errors import ExtractionFailed, InvalidInput
from .models import EncodingOption, MediaDescriptor
from .process import spawn

logger = logging.getLogger(__name__)

# Flags shared by the info dump and the stream, mirrors the download side
PERMISSIVE_FLAGS = [
    "--no-warnings",
    "--no-check-certificates",
    "--prefer-free-formats",
    "--youtube-skip-dash-manifest",
    "--no-playlist",
]

# Video-only formats at these sizes are worth offering: they get muxed
# with the best audio track at download time
HIGH_RES_VIDEO_ONLY = frozenset({"1920x1080", "2560x1440", "3840x2160"})

CODEC_NONE = "none"


def is_combined(fmt):
    return fmt.get("vcodec") != CODEC_NONE and fmt.get("acodec") != CODEC_NONE


def is_high_res_video_only(fmt):
    return (
        fmt.get("vcodec") != CODEC_NONE
        and fmt.get("acodec") == CODEC_NONE
        and fmt.get("resolution") in HIGH_RES_VIDEO_ONLY
    )


def include_format(fmt):
    """Inclusion policy: combined streams, or high-res video-only streams."""
    return is_combined(fmt) or is_high_res_video_only(fmt)


def project_format(fmt):
    format_id = str(fmt.get("format_id", ""))
    resolution = fmt.get("resolution") or ""
    return EncodingOption(
        encoding_id=format_id,
        label=fmt.get("format_note") or resolution or format_id,
        container_ext=fmt.get("ext") or "",
        resolution_tag=resolution,
        frame_rate=fmt.get("fps"),
        size_bytes_exact=fmt.get("filesize"),
        size_bytes_approx=fmt.get("filesize_approx"),
    )


def filter_formats(formats):
    """Apply the inclusion policy and projection, keeping yt-dlp's order."""
    return [project_format(f) for f in formats if isinstance(f, dict) and include_format(f)]


class Resolver:
    """Runs yt-dlp in dump mode and narrows its format list."""

    def __init__(self, ytdlp_bin="yt-dlp", process_factory=spawn, logger=logger):
        self.ytdlp_bin = ytdlp_bin
        self.process_factory = process_factory
        self.logger = logger

    def build_command(self, url):
        # "--" keeps a URL starting with "-" from being read as an option
        return [self.ytdlp_bin, "--dump-single-json", *PERMISSIVE_FLAGS, "--", url]

    def _run(self, url):
        handle = self.process_factory(self.build_command(url))
        try:
            handle.start()
        except OSError as e:
            self.logger.error(f"Could not start {self.ytdlp_bin}: {e}")
            raise ExtractionFailed(f"{self.ytdlp_bin} is not installed or not in PATH") from e

        # No timeout: the wait is bounded only by yt-dlp itself
        try:
            raw = handle.output.read() if handle.output is not None else b""
            code = handle.wait()
        finally:
            handle.terminate()

        if code != 0:
            tail = handle.stderr_tail()
            self.logger.error(f"{self.ytdlp_bin} exited with {code} for {url}: {tail}")
            message = tail[-1] if tail else None
            raise ExtractionFailed(message)
        return raw

    def resolve(self, url):
        if not url:
            raise InvalidInput("URL is required")

        self.logger.info(f"Fetching metadata for: {url}")
        raw = self._run(url)

        try:
            info = json.loads(raw)
        except (ValueError, UnicodeDecodeError) as e:
            self.logger.error(f"Malformed metadata for {url}: {e}")
            raise ExtractionFailed() from e
        if not isinstance(info, dict):
            self.logger.error(f"Unexpected metadata type for {url}: {type(info).__name__}")
            raise ExtractionFailed()

        descriptor = MediaDescriptor(
            id=info.get("id", ""),
            title=info.get("title", ""),
            thumbnail_url=info.get("thumbnail", ""),
            encodings=filter_formats(info.get("formats") or []),
        )
        self.logger.info(f"Resolved {descriptor.id}: {len(descriptor.encodings)} formats")
        return descriptor
