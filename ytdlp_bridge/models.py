from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional


@dataclass(frozen=True)
class EncodingOption:
    """One downloadable format, as surfaced to the client."""

    encoding_id: str
    label: str
    container_ext: str
    resolution_tag: str
    frame_rate: Optional[float] = None
    size_bytes_exact: Optional[int] = None
    size_bytes_approx: Optional[int] = None

    @property
    def display_size(self) -> Optional[int]:
        # Exact size wins, approximate is the fallback
        return self.size_bytes_exact or self.size_bytes_approx

    def to_dict(self) -> dict:
        return {
            "encodingId": self.encoding_id,
            "label": self.label,
            "containerExt": self.container_ext,
            "resolutionTag": self.resolution_tag,
            "frameRate": self.frame_rate,
            "sizeBytesExact": self.size_bytes_exact,
            "sizeBytesApprox": self.size_bytes_approx,
        }


@dataclass(frozen=True)
class MediaDescriptor:
    id: str
    title: str
    thumbnail_url: str
    encodings: List[EncodingOption] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "title": self.title,
            "thumbnailUrl": self.thumbnail_url,
            "encodings": [e.to_dict() for e in self.encodings],
        }


class SessionState(str, Enum):
    CREATED = "created"
    PROCESS_SPAWNED = "process_spawned"
    STREAMING = "streaming"
    COMPLETED = "completed"
    ABORTED = "aborted"

    @property
    def terminal(self) -> bool:
        return self in (SessionState.COMPLETED, SessionState.ABORTED)


# Allowed forward transitions; nothing goes back
SESSION_TRANSITIONS = {
    SessionState.CREATED: {SessionState.PROCESS_SPAWNED, SessionState.ABORTED},
    SessionState.PROCESS_SPAWNED: {SessionState.STREAMING, SessionState.ABORTED},
    SessionState.STREAMING: {SessionState.COMPLETED, SessionState.ABORTED},
    SessionState.COMPLETED: set(),
    SessionState.ABORTED: set(),
}


@dataclass
class StreamSession:
    """One in-flight download. Never shared between requests."""

    source_url: str
    encoding_id: str
    process: Optional[object] = None
    bytes_sent: int = 0
    state: SessionState = SessionState.CREATED

    def advance(self, new_state: SessionState) -> None:
        if new_state not in SESSION_TRANSITIONS[self.state]:
            raise RuntimeError(f"Illegal session transition {self.state.value} -> {new_state.value}")
        self.state = new_state
