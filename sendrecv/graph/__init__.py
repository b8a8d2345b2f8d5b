"""
Media graph description, the static send graph and per-stream routing.
"""

from __future__ import annotations

__all__ = [
    "ElementSpec",
    "GraphTemplate",
    "MediaGraph",
    "MediaGraphController",
    "MediaKind",
    "MediaLink",
    "MediaNode",
    "MediaStreamHandle",
    "NodeKind",
]

from .model import ElementSpec, MediaGraph, MediaLink, MediaNode, NodeKind
from .template import GraphTemplate
from .controller import MediaGraphController, MediaKind, MediaStreamHandle
