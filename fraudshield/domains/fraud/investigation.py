"""Investigative fraud-ring discovery over the relationship graph.

Bounded-depth breadth-first walk from a user that reports every reachable
user above the ring risk threshold. The report is for analysts only and never
feeds the automated score.
"""

from collections import deque

import structlog

from .config import FraudConfig, default_config
from .models import EdgeDirection, FraudRingReport, RingMember
from .store.base import SignalStore

logger = structlog.get_logger()


class FraudRingInvestigator:
    def __init__(self, store: SignalStore, config: FraudConfig | None = None) -> None:
        self._store = store
        self._config = config or default_config

    async def discover(
        self,
        user_id: str,
        depth: int | None = None,
        risk_threshold: float | None = None,
        direction: EdgeDirection | None = None,
    ) -> FraudRingReport:
        settings = self._config.network
        depth = settings.ring_depth if depth is None else depth
        risk_threshold = settings.ring_risk_threshold if risk_threshold is None else risk_threshold
        direction = direction or EdgeDirection(settings.direction)

        members: list[RingMember] = []
        visited = {user_id}
        frontier: deque[tuple[str, list[str]]] = deque([(user_id, [user_id])])

        uow = await self._store.begin()
        try:
            while frontier:
                current, path = frontier.popleft()
                hops = len(path) - 1
                if hops >= depth:
                    continue
                for conn in await self._store.get_direct_connections(uow, current, direction):
                    if conn.user_id in visited:
                        continue
                    visited.add(conn.user_id)
                    next_path = path + [conn.user_id]
                    if conn.risk_score > risk_threshold:
                        members.append(
                            RingMember(
                                user_id=conn.user_id,
                                risk_score=conn.risk_score,
                                hops=hops + 1,
                                path=next_path,
                            )
                        )
                    frontier.append((conn.user_id, next_path))
        finally:
            await uow.rollback()

        logger.info(
            "fraud_ring_discovered",
            user_id=user_id,
            depth=depth,
            members=len(members),
            visited=len(visited) - 1,
        )
        return FraudRingReport(
            user_id=user_id,
            depth=depth,
            risk_threshold=risk_threshold,
            members=members,
        )
