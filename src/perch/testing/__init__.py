"""Test utilities for perch applications.

Provides an in-process ASGI test client and ``send`` doubles::

    from perch.testing import TestClient, SlowSink
"""

from perch.testing.client import TestClient
from perch.testing.sinks import BrokenSink, RecordingSink, SlowSink

__all__ = [
    "BrokenSink",
    "RecordingSink",
    "SlowSink",
    "TestClient",
]
