"""
Media engine interface, its GStreamer backend and the pipeline lifecycle.
"""

from __future__ import annotations

from .engine import EngineListener, IncomingStream, MediaEngine, SessionDescription
from .gst_engine import GStreamerMediaEngine
from .lifecycle import PipelineLifecycleManager

__all__ = [
    "EngineListener",
    "GStreamerMediaEngine",
    "IncomingStream",
    "MediaEngine",
    "PipelineLifecycleManager",
    "SessionDescription",
]
