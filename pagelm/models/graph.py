from typing import Literal

from pagelm.models.base import ApiModel


class NodeCitation(ApiModel):
    file: str
    page: int | None = None


class GraphNode(ApiModel):
    id: str
    label: str
    description: str = ""
    category: str = "term"
    importance: Literal["high", "medium", "low"] = "medium"
    sources: list[NodeCitation] = []


class GraphEdge(ApiModel):
    source: str
    target: str
    label: str = ""
    weight: float = 0.5


class KnowledgeGraph(ApiModel):
    nodes: list[GraphNode] = []
    edges: list[GraphEdge] = []
    generated_at: int = 0
    source_count: int = 0


class NodePosition(ApiModel):
    id: str
    x: float
    y: float
    width: float
    height: float
    degree: int
    max_degree: int


class GraphLayout(ApiModel):
    nodes: list[NodePosition]
    edges: list[GraphEdge]
