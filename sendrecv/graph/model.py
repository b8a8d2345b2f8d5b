"""
Declarative description of the media graph.

Nodes are registered under stable logical names, so later stages look up the
compositor or the relay tee by name instead of rebuilding them.  Links join
a named output port of one node to a named input port of another.  The graph
is grown incrementally and must stay acyclic; WebRTC endpoints count as
the end of the send path and the start of the receive path.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Mapping, Optional, Tuple

from ..errors import GraphError


class NodeKind(str, Enum):
    SOURCE = "source"
    TRANSFORM = "transform"
    MIXER = "mixer"
    TEE = "tee"
    SINK = "sink"
    DECODER = "decoder"
    ENDPOINT = "endpoint"


@dataclass(frozen=True)
class ElementSpec:
    """One engine element: a factory name and the properties to apply."""

    factory: str
    properties: Mapping[str, object] = field(default_factory=dict)


@dataclass(frozen=True)
class MediaNode:
    """
    A node of the graph.

    A node made of several elements is realised as a chain whose first
    element exposes the ``sink`` port and whose last element exposes ``src``.
    ``dynamic_outputs`` marks nodes whose output ports only appear once media
    flows (decoders, the WebRTC endpoint).
    """

    name: str
    kind: NodeKind
    elements: Tuple[ElementSpec, ...]
    inputs: Tuple[str, ...] = ("sink",)
    outputs: Tuple[str, ...] = ("src",)
    dynamic_outputs: bool = False

    def __post_init__(self) -> None:
        if not self.elements:
            raise GraphError(f"node '{self.name}' has no elements")

    def accepts_output(self, port: str) -> bool:
        return self.dynamic_outputs or port in self.outputs

    def accepts_input(self, port: str) -> bool:
        return port in self.inputs


@dataclass(frozen=True)
class MediaLink:
    src: str
    src_port: str
    dst: str
    dst_port: str

    def __str__(self) -> str:
        return f"{self.src}.{self.src_port} -> {self.dst}.{self.dst_port}"


class MediaGraph:
    """Registry of named nodes plus the links between them."""

    def __init__(self) -> None:
        self._nodes: Dict[str, MediaNode] = {}
        self._links: List[MediaLink] = []

    # ------------------------------------------------------------------ nodes

    @property
    def nodes(self) -> Dict[str, MediaNode]:
        return dict(self._nodes)

    @property
    def links(self) -> List[MediaLink]:
        return list(self._links)

    def __contains__(self, name: object) -> bool:
        return name in self._nodes

    def node(self, name: str) -> MediaNode:
        try:
            return self._nodes[name]
        except KeyError:
            raise GraphError(f"unknown node '{name}'") from None

    def add_node(self, node: MediaNode) -> MediaNode:
        if node.name in self._nodes:
            raise GraphError(f"node '{node.name}' already exists")
        self._nodes[node.name] = node
        return node

    # ------------------------------------------------------------------ links

    def input_link(self, node_name: str, port: str) -> Optional[MediaLink]:
        for link in self._links:
            if link.dst == node_name and link.dst_port == port:
                return link
        return None

    def is_input_linked(self, node_name: str, port: str) -> bool:
        return self.input_link(node_name, port) is not None

    def add_link(self, link: MediaLink) -> MediaLink:
        src = self.node(link.src)
        dst = self.node(link.dst)
        if not src.accepts_output(link.src_port):
            raise GraphError(f"node '{src.name}' has no output port '{link.src_port}'")
        if not dst.accepts_input(link.dst_port):
            raise GraphError(f"node '{dst.name}' has no input port '{link.dst_port}'")
        if self.is_input_linked(link.dst, link.dst_port):
            raise GraphError(f"input {link.dst}.{link.dst_port} is already linked")
        if any(existing.src == link.src and existing.src_port == link.src_port for existing in self._links):
            raise GraphError(f"output {link.src}.{link.src_port} is already linked")
        if self._reaches(link.dst, link.src):
            raise GraphError(f"link {link} would create a cycle")
        self._links.append(link)
        return link

    def downstream(self, name: str) -> List[str]:
        return [link.dst for link in self._links if link.src == name]

    def _reaches(self, start: str, target: str) -> bool:
        # Endpoints end the send path and start the receive path; media
        # never flows from their inputs to their outputs.
        stack = [start]
        seen = set()
        while stack:
            current = stack.pop()
            if current == target:
                return True
            if current in seen:
                continue
            seen.add(current)
            if self._nodes[current].kind is NodeKind.ENDPOINT:
                continue
            stack.extend(self.downstream(current))
        return False

    def describe(self) -> Dict[str, object]:
        return {
            "nodes": {
                name: {"kind": node.kind.value, "elements": [spec.factory for spec in node.elements]}
                for name, node in self._nodes.items()
            },
            "links": [str(link) for link in self._links],
        }


def chain(name: str, kind: NodeKind, *elements: ElementSpec, **kwargs) -> MediaNode:
    return MediaNode(name=name, kind=kind, elements=tuple(elements), **kwargs)


def element(factory: str, **properties: object) -> ElementSpec:
    """
    Build an :class:`ElementSpec` from keyword properties.

    Underscores become dashes (``is_live`` -> ``is-live``) and a double
    underscore addresses a pad property (``sink_1__xpos`` -> ``sink_1::xpos``).
    """

    return ElementSpec(factory=factory, properties={_property_name(key): value for key, value in properties.items()})


def _property_name(key: str) -> str:
    if "__" in key:
        pad, prop = key.split("__", 1)
        return f"{pad}::{prop.replace('_', '-')}"
    return key.replace("_", "-")


__all__ = ["ElementSpec", "MediaGraph", "MediaLink", "MediaNode", "NodeKind", "chain", "element"]
