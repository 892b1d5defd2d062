"""Test helpers: an httpx transport that records requests and serves stubs."""

from .transport import RecordedRequest, RecordingTransport, make_response

__all__ = ["RecordedRequest", "RecordingTransport", "make_response"]
