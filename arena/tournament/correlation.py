"""
Correlated-market detection.

Market questions are tokenized into keyword sets; any two markets whose
Jaccard similarity reaches the threshold are joined, and clusters are the
connected components of that relation (so similarity is transitive through
intermediate markets).
"""

from __future__ import annotations

import re
from typing import Iterable, Sequence

from arena.models import ACTION_PASS

STOPWORDS = frozenset(
    """
    a an the is are was were be been being have has had do does did will would
    could should may might shall can need dare ought to of in for on with at by
    from as into through during before after above below between out off over
    under again further then once and but or nor not so yet both either neither
    each every all any few more most other some such no only own same than too
    very just because if when where how what which who whom this that these
    those it its he she they them their we you i me my your his her our
    """.split()
)

DEFAULT_THRESHOLD = 0.5

_TOKEN_SPLIT = re.compile(r"[^a-z0-9]+")


def tokenize(question: str) -> set[str]:
    """Lowercased keywords of a question: no stopwords, no single characters."""
    return {
        token
        for token in _TOKEN_SPLIT.split(question.lower())
        if len(token) > 1 and token not in STOPWORDS
    }


def jaccard_similarity(a: set[str], b: set[str]) -> float:
    if not a and not b:
        return 0.0
    return len(a & b) / len(a | b)


class UnionFind:
    """Disjoint sets over indices 0..n-1, with path compression."""

    def __init__(self, size: int):
        self.parent = list(range(size))

    def find(self, i: int) -> int:
        root = i
        while self.parent[root] != root:
            root = self.parent[root]
        while self.parent[i] != root:
            self.parent[i], i = root, self.parent[i]
        return root

    def union(self, i: int, j: int) -> None:
        root_i, root_j = self.find(i), self.find(j)
        if root_i != root_j:
            self.parent[root_j] = root_i


def detect_correlation(
    markets: Sequence[tuple[str, str]],
    threshold: float = DEFAULT_THRESHOLD,
) -> dict[str, str]:
    """
    Map each market id to a cluster id.

    `markets` is a sequence of (market_id, question). Cluster ids are
    `cluster_<id>` of the component's representative market.
    """
    tokens = [tokenize(question) for _, question in markets]
    sets = UnionFind(len(markets))

    for i in range(len(markets)):
        for j in range(i + 1, len(markets)):
            if jaccard_similarity(tokens[i], tokens[j]) >= threshold:
                sets.union(i, j)

    return {
        market_id: f"cluster_{markets[sets.find(i)][0]}"
        for i, (market_id, _) in enumerate(markets)
    }


def adjusted_pnl(bets: Iterable, clusters: dict[str, str]) -> float:
    """
    P&L counting only the earliest settled directional bet per cluster.

    `bets` must carry market_id, created_at, id, action, settled and pnl.
    Markets absent from `clusters` form their own cluster.
    """
    earliest: dict[str, object] = {}
    candidates = sorted(
        (b for b in bets if b.settled and b.action != ACTION_PASS),
        key=lambda b: (b.created_at, b.id),
    )
    for bet in candidates:
        cluster_id = clusters.get(bet.market_id, f"cluster_{bet.market_id}")
        earliest.setdefault(cluster_id, bet)
    return sum(bet.pnl for bet in earliest.values())
