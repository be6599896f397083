"""
External collaborators of the session and transaction layer.
"""

from __future__ import annotations

from spanner_session.integrations.transport import SpannerTransport

__all__ = ["SpannerTransport"]
