"""
Force-directed placement for knowledge graphs and mind maps.

The most connected node is pinned at the origin and every other node is
pulled in by its edges (heavier edges pull harder, so related concepts sit
closer) and pushed apart by the rest. Node boxes grow with degree so hubs
read as hubs. Positions are the top-left corners of the node boxes.
"""
from __future__ import annotations

import logging

import networkx as nx
import numpy as np

from pagelm.models.graph import GraphLayout, KnowledgeGraph, NodePosition

logger = logging.getLogger(__name__)

NODE_BASE_WIDTH = 180
NODE_BASE_HEIGHT = 50
MIN_WEIGHT = 0.3


def node_scale(degree: int, max_degree: int) -> float:
    """0.85 for leaves up to 1.6 for the hub."""
    if max_degree <= 1:
        return 1.0
    return 0.85 + (degree / max_degree) * 0.75


def _forces(node_count: int) -> tuple[int, int]:
    """(charge strength, link distance) for a graph of this size."""
    if node_count > 80:
        return -1000, 260
    if node_count > 30:
        return -750, 220
    return -550, 180


def force_layout(graph: KnowledgeGraph, seed: int = 0) -> GraphLayout:
    node_ids = [n.id for n in graph.nodes]
    if not node_ids:
        return GraphLayout(nodes=[], edges=[])

    known = set(node_ids)
    edges = [e for e in graph.edges if e.source in known and e.target in known]
    if len(edges) != len(graph.edges):
        logger.debug("Dropped %d edges with unknown endpoints", len(graph.edges) - len(edges))

    degree = dict.fromkeys(node_ids, 0)
    for e in edges:
        degree[e.source] += 1
        degree[e.target] += 1

    max_degree = 0
    center_id = node_ids[0]
    for node_id, d in degree.items():
        if d > max_degree:
            max_degree, center_id = d, node_id

    charge, link_distance = _forces(len(node_ids))

    g = nx.Graph()
    g.add_nodes_from(node_ids)
    for e in edges:
        if e.source == e.target:
            continue
        w = max(MIN_WEIGHT, e.weight)
        # parallel edges keep the strongest pull
        if g.has_edge(e.source, e.target):
            w = max(w, g[e.source][e.target]["weight"])
        g.add_edge(e.source, e.target, weight=w)

    rng = np.random.default_rng(seed)
    initial = {
        node_id: np.zeros(2) if node_id == center_id else rng.uniform(-0.5, 0.5, 2)
        for node_id in node_ids
    }
    ticks = min(300, 100 + len(node_ids) * 2)
    # pinning the hub also keeps networkx from recentring and rescaling
    pos = nx.spring_layout(
        g,
        k=abs(charge) / 550,
        pos=initial,
        fixed=[center_id],
        iterations=ticks,
        weight="weight",
        seed=seed,
    )

    placed = []
    for node_id in node_ids:
        x, y = np.asarray(pos[node_id]) * link_distance
        scale = node_scale(degree[node_id], max_degree)
        w, h = NODE_BASE_WIDTH * scale, NODE_BASE_HEIGHT * scale
        placed.append(NodePosition(
            id=node_id,
            x=float(x - w / 2),
            y=float(y - h / 2),
            width=w,
            height=h,
            degree=degree[node_id],
            max_degree=max_degree,
        ))
    return GraphLayout(nodes=placed, edges=edges)
