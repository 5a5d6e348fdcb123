"""
Input audio commit gate.

The upstream rejects ``input_audio_buffer.commit`` when fewer than 100 ms of
audio have been appended since the previous commit. The gate counts appended
bytes and says whether a commit is allowed; it never holds audio itself,
frames are appended upstream as soon as they are admitted.
"""

from agent_proxy.config.constants import (
    AUDIO_CHANNELS,
    AUDIO_SAMPLE_RATE,
    AUDIO_SAMPLE_WIDTH,
    MIN_AUDIO_MS_FOR_COMMIT,
)
from agent_proxy.errors import AudioBufferTooSmallError


def bytes_for_duration(sample_rate: int, sample_width: int, channels: int, duration_ms: int) -> int:
    """Number of PCM bytes covering ``duration_ms`` of audio."""
    return sample_rate * sample_width * channels * duration_ms // 1000


class AudioCommitGate:
    """
    Counts bytes appended since the last commit and compares them to the
    minimum commit size.

    With the defaults (24 kHz, 16-bit, mono, 100 ms) the threshold is 4800
    bytes: 4799 buffered bytes never allow a commit, 4800 do.
    """

    def __init__(
        self,
        sample_rate: int = AUDIO_SAMPLE_RATE,
        sample_width: int = AUDIO_SAMPLE_WIDTH,
        channels: int = AUDIO_CHANNELS,
        min_duration_ms: int = MIN_AUDIO_MS_FOR_COMMIT,
    ):
        self.threshold = bytes_for_duration(sample_rate, sample_width, channels, min_duration_ms)
        self.pending_bytes = 0

    @property
    def has_pending(self) -> bool:
        return self.pending_bytes > 0

    def record(self, byte_count: int) -> int:
        """
        Count bytes that were appended upstream.

        Returns:
            int: Bytes pending since the last commit
        """
        if byte_count < 0:
            raise ValueError("byte_count cannot be negative")
        self.pending_bytes += byte_count
        return self.pending_bytes

    def ready(self) -> bool:
        """True when enough audio is buffered for the upstream to accept a commit."""
        return self.pending_bytes >= self.threshold

    def commit(self) -> int:
        """
        Reset the counter for a commit that is about to be sent.

        Returns:
            int: The number of bytes covered by the commit

        Raises:
            AudioBufferTooSmallError: fewer bytes than the threshold are pending
        """
        if not self.ready():
            raise AudioBufferTooSmallError(self.pending_bytes, self.threshold)
        committed = self.pending_bytes
        self.pending_bytes = 0
        return committed

    def reset(self) -> None:
        """Forget pending bytes the upstream committed on its own (server VAD)."""
        self.pending_bytes = 0
