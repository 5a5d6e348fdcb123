"""
Exceptions raised by the proxy.

Only conditions the proxy can gate ahead of time (turn ordering, the audio
commit threshold) are recovered from locally. Everything else reaches the
orchestrator, which reports it to the client as an ``Error`` event and closes
the connection.
"""


class ProxyError(Exception):
    """Base class for proxy errors."""

    code = "proxy_error"


class MalformedMessageError(ProxyError):
    """A frame from the client or upstream is not valid JSON or has an unexpected shape."""

    code = "malformed_message"

    def __init__(self, source: str, detail: str):
        self.source = source
        self.detail = detail
        super().__init__(f"Malformed {source} message: {detail}")


class UpstreamConnectionError(ProxyError):
    """The upstream realtime endpoint could not be reached or refused the handshake."""

    code = "upstream_connection_failed"


class AudioBufferTooSmallError(ProxyError):
    """A commit was attempted with less buffered audio than the upstream accepts."""

    code = "audio_buffer_too_small"

    def __init__(self, pending_bytes: int, threshold: int):
        self.pending_bytes = pending_bytes
        self.threshold = threshold
        super().__init__(
            f"Cannot commit {pending_bytes} bytes of audio; at least {threshold} bytes are required"
        )
