"""
Reconciliation engine.

Merges one poll tick's fetch outcomes into the node registry. The registry is
keyed by endpoint, never by the node's self-reported id: two endpoints that
report the same (or an empty) ``nodeId`` stay two records, and a node that
comes back with a new id after a restart overwrites its own record instead of
leaving a ghost behind.

Per outcome:

- success: the parsed record replaces the stored one, status is forced to
  healthy, the connection is marked connected with ``last_seen = now``.
- failure with a stored record: every field is held, status becomes offline
  and ``last_update`` is refreshed.
- failure without a stored record: an offline placeholder is synthesized.
- failures never touch ``last_seen``; it stays at the last success, or 0.0.

Outcomes for endpoints that are no longer known (removed while the fetch was
in flight) are dropped so removal cannot be undone by a late answer.
"""

from __future__ import annotations

import time
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field, replace

from loguru import logger

from fleetmon.datastructures.node_types import (
    Connection,
    NodeRecord,
    NodeStatus,
)
from fleetmon.datastructures.type_aliases import Endpoint, Timestamp

from .metrics_fetcher import FetchOutcome, FetchSuccess


@dataclass(frozen=True, slots=True)
class ReconcileResult:
    """What one reconciliation pass changed."""

    succeeded: tuple[Endpoint, ...] = ()
    failed: tuple[Endpoint, ...] = ()
    placeholders: tuple[Endpoint, ...] = ()
    discarded: tuple[Endpoint, ...] = ()


@dataclass(slots=True)
class NodeRegistry:
    """Endpoint-keyed node records and connections."""

    zero_offline_activity: bool = False
    _nodes: dict[Endpoint, NodeRecord] = field(default_factory=dict)
    _connections: dict[Endpoint, Connection] = field(default_factory=dict)
    _ever_succeeded: set[Endpoint] = field(default_factory=set)

    def reconcile(
        self,
        outcomes: Iterable[FetchOutcome],
        *,
        is_known: Callable[[Endpoint], bool],
        now: Timestamp | None = None,
    ) -> ReconcileResult:
        """Apply fetch outcomes; each endpoint is handled independently."""
        now = time.time() if now is None else now
        succeeded: list[Endpoint] = []
        failed: list[Endpoint] = []
        placeholders: list[Endpoint] = []
        discarded: list[Endpoint] = []

        for outcome in outcomes:
            endpoint = outcome.endpoint
            if not is_known(endpoint):
                discarded.append(endpoint)
                continue

            if isinstance(outcome, FetchSuccess):
                self._apply_success(outcome.record, now)
                succeeded.append(endpoint)
                continue

            if self._apply_failure(endpoint, now):
                placeholders.append(endpoint)
            failed.append(endpoint)

        if discarded:
            logger.debug(f"Discarded results for removed endpoints: {discarded}")

        return ReconcileResult(
            succeeded=tuple(succeeded),
            failed=tuple(failed),
            placeholders=tuple(placeholders),
            discarded=tuple(discarded),
        )

    def _apply_success(self, record: NodeRecord, now: Timestamp) -> None:
        endpoint = record.endpoint
        previous = self._nodes.get(endpoint)
        if previous is not None and previous.node_id != record.node_id:
            logger.info(
                f"Node at {endpoint} changed id {previous.node_id} -> {record.node_id}"
            )
        if previous is None or previous.status is NodeStatus.OFFLINE:
            logger.info(f"Node {record.node_id} at {endpoint} is online")

        self._nodes[endpoint] = replace(
            record, status=NodeStatus.HEALTHY, last_update=now
        )
        self._connections[endpoint] = Connection(
            endpoint=endpoint,
            node_id=record.node_id,
            connected=True,
            last_seen=now,
        )
        self._ever_succeeded.add(endpoint)

    def _apply_failure(self, endpoint: Endpoint, now: Timestamp) -> bool:
        """Mark ``endpoint`` offline; returns True if a placeholder was created."""
        existing = self._nodes.get(endpoint)
        created = existing is None

        if existing is None:
            record = NodeRecord.offline_placeholder(endpoint, now=now)
        else:
            if existing.status is not NodeStatus.OFFLINE:
                logger.warning(f"Node {existing.node_id} at {endpoint} went offline")
            record = replace(existing, status=NodeStatus.OFFLINE, last_update=now)
            if self.zero_offline_activity:
                record = replace(
                    record,
                    throughput=0.0,
                    workers=replace(record.workers, active=0),
                )
        self._nodes[endpoint] = record

        connection = self._connections.get(endpoint)
        self._connections[endpoint] = Connection(
            endpoint=endpoint,
            node_id=record.node_id,
            connected=False,
            last_seen=connection.last_seen if connection is not None else 0.0,
        )
        return created

    def forget(self, endpoint: Endpoint) -> bool:
        """Drop the record and connection of a removed endpoint."""
        self._ever_succeeded.discard(endpoint)
        self._connections.pop(endpoint, None)
        return self._nodes.pop(endpoint, None) is not None

    def has_succeeded(self, endpoint: Endpoint) -> bool:
        return endpoint in self._ever_succeeded

    def get(self, endpoint: Endpoint) -> NodeRecord | None:
        return self._nodes.get(endpoint)

    def connection(self, endpoint: Endpoint) -> Connection | None:
        return self._connections.get(endpoint)

    def nodes(self) -> list[NodeRecord]:
        """All records, one per endpoint, in first-seen order."""
        return list(self._nodes.values())

    def connections(self) -> list[Connection]:
        return list(self._connections.values())

    def unreachable_endpoints(self) -> list[Endpoint]:
        return [
            endpoint
            for endpoint, connection in self._connections.items()
            if not connection.connected
        ]

    def __len__(self) -> int:
        return len(self._nodes)
