from .bridge import Bridge, DownloadStream
from .errors import BridgeError, ExtractionFailed, InvalidInput, StreamAborted, StreamStartFailed
from .models import EncodingOption, MediaDescriptor, SessionState, StreamSession
from .resolver import Resolver

__all__ = [
    "Bridge",
    "BridgeError",
    "DownloadStream",
    "EncodingOption",
    "ExtractionFailed",
    "InvalidInput",
    "MediaDescriptor",
    "Resolver",
    "SessionState",
    "StreamAborted",
    "StreamSession",
    "StreamStartFailed",
]
