"""
Service-side view of the browser media collaborators.

The browser owns the camera and microphone. It tells the service whether
getUserMedia succeeded, then streams recorder chunks and final
speech-recognition results. These classes give the interview runner the
same start/stop/callback surface the browser APIs expose, and enforce that
nothing is delivered once a stream has been released.
"""
import logging
from typing import Callable, List, Optional

from utilities.constants import PREFERRED_MIME_TYPE, RECORDING_MIME_TYPE
from utilities.errors import InvalidStateError, PermissionDeniedError

logger = logging.getLogger(__name__)


class StreamReleasedError(InvalidStateError):
    def __init__(self):
        super().__init__('The camera and microphone have been released.')


class Track:
    def __init__(self, kind):
        self.kind = kind
        self.ready_state = 'live'

    def stop(self):
        self.ready_state = 'ended'


class MediaStream:
    def __init__(self, tracks):
        self.tracks = list(tracks)

    @property
    def active(self):
        return any(track.ready_state == 'live' for track in self.tracks)

    def stop(self):
        """Stop every track. Idempotent."""
        for track in self.tracks:
            track.stop()

    def ensure_live(self):
        if not self.active:
            raise StreamReleasedError()


class MediaDevices:
    """Acquires combined audio/video streams."""

    def get_user_media(self, audio=True, video=True) -> MediaStream:
        raise NotImplementedError

    def is_type_supported(self, mime_type) -> bool:
        return False


class ClientMediaDevices(MediaDevices):
    """Devices as reported by the browser for one acquisition attempt."""

    def __init__(self, granted=True, error=None, supported_types=None):
        self.granted = granted
        self.error = error
        self.supported_types = set(supported_types or [])

    def get_user_media(self, audio=True, video=True):
        if not self.granted:
            raise PermissionDeniedError(
                'Unable to access camera and microphone. Please check permissions.',
                {'reason': self.error} if self.error else None,
            )
        kinds = [kind for kind, wanted in (('audio', audio), ('video', video)) if wanted]
        return MediaStream(Track(kind) for kind in kinds)

    def is_type_supported(self, mime_type):
        return mime_type in self.supported_types


def choose_mime_type(is_type_supported: Callable[[str], bool]) -> Optional[str]:
    """Preferred codec profile, or None to let the recorder use its default."""
    if is_type_supported(PREFERRED_MIME_TYPE):
        return PREFERRED_MIME_TYPE
    logger.info("Codec %s not supported, falling back to default", PREFERRED_MIME_TYPE)
    return None


class MediaRecorder:
    def __init__(self, stream: MediaStream, mime_type: Optional[str] = None):
        self.stream = stream
        self.mime_type = mime_type
        self.state = 'inactive'
        self.chunks: List[bytes] = []
        self.on_data_available: Optional[Callable[[bytes], None]] = None

    def start(self):
        self.stream.ensure_live()
        self.chunks = []
        self.state = 'recording'

    def push_chunk(self, data: bytes):
        """Deliver one dataavailable chunk from the browser."""
        self.stream.ensure_live()
        if self.state != 'recording':
            raise InvalidStateError('The recorder is not running.')
        if not data:
            return
        self.chunks.append(data)
        if self.on_data_available:
            self.on_data_available(data)

    def stop(self) -> bytes:
        """Stop and return the assembled recording."""
        self.state = 'inactive'
        return b''.join(self.chunks)

    def reset(self):
        self.state = 'inactive'
        self.chunks = []

    @property
    def blob_type(self):
        # Downloads are always offered as webm, whatever codec was negotiated
        return RECORDING_MIME_TYPE


class SpeechRecognizer:
    """Continuous speech-to-text; only final results are forwarded."""

    def __init__(self, stream: MediaStream):
        self.stream = stream
        self.listening = False
        self.on_final: Optional[Callable[[str], None]] = None

    def start(self):
        self.stream.ensure_live()
        self.listening = True

    def push_result(self, text: str, is_final=True):
        self.stream.ensure_live()
        if not self.listening:
            raise InvalidStateError('Speech recognition is not running.')
        if is_final and text and text.strip() and self.on_final:
            self.on_final(text.strip())

    def stop(self):
        self.listening = False
