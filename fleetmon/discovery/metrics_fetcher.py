"""
Metrics fetcher.

One bounded request per endpoint to ``<endpoint>/metrics``, parsed into a
``NodeRecord``. Fetching is a pure request/parse step: it never raises and
never touches the registry, so a poll tick can fan it out freely.

Every response field is optional. Missing or mistyped values fall back to
zero values: numbers to 0, strings to their defaults, ``teePlatform`` to
None, arrays to empty.
"""

from __future__ import annotations

import asyncio
import math
import time
from collections.abc import Iterable
from dataclasses import dataclass

import aiohttp
from loguru import logger

from fleetmon.datastructures.node_types import (
    CellMetric,
    CellRole,
    LatencyMetrics,
    NodeRecord,
    NodeStatus,
    TeePlatform,
    WorkerMetrics,
    endpoint_node_id,
)
from fleetmon.datastructures.type_aliases import (
    DurationSeconds,
    Endpoint,
    JsonMapping,
    JsonValue,
    Timestamp,
)

from .http import REQUEST_ERRORS, client_session

MAX_FETCH_TIMEOUT: DurationSeconds = 3.0
MALFORMED_PAYLOAD = "malformed metrics payload"


@dataclass(frozen=True, slots=True)
class FetchSuccess:
    endpoint: Endpoint
    record: NodeRecord

    @property
    def ok(self) -> bool:
        return True


@dataclass(frozen=True, slots=True)
class FetchFailure:
    endpoint: Endpoint
    reason: str

    @property
    def ok(self) -> bool:
        return False


type FetchOutcome = FetchSuccess | FetchFailure


def _number(value: JsonValue, default: float = 0.0) -> float:
    # bool is an int subclass but never a meaningful metric
    if isinstance(value, bool) or not isinstance(value, int | float):
        return default
    try:
        number = float(value)
    except OverflowError:
        return default
    return default if math.isnan(number) or math.isinf(number) else number


def _integer(value: JsonValue) -> int:
    return int(_number(value))


def _flag(value: JsonValue) -> bool:
    return value if isinstance(value, bool) else False


def _text(value: JsonValue, default: str) -> str:
    return value if isinstance(value, str) and value else default


def _mapping(value: JsonValue) -> JsonMapping:
    return value if isinstance(value, dict) else {}


def _sequence(value: JsonValue) -> list[JsonValue]:
    return value if isinstance(value, list) else []


def _tee_platform(value: JsonValue) -> TeePlatform | None:
    try:
        return TeePlatform(value)
    except ValueError:
        return None


def _cell(value: JsonValue) -> CellMetric | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return CellMetric(id=value)
    raw = _mapping(value)
    cell_id = raw.get("id")
    if isinstance(cell_id, bool) or not isinstance(cell_id, int):
        return None
    try:
        role = CellRole(raw.get("role")) if raw.get("role") is not None else None
    except ValueError:
        role = None
    return CellMetric(
        id=cell_id,
        signal=min(100.0, max(0.0, _number(raw.get("signal")))),
        queue_depth=max(0, _integer(raw.get("queueDepth"))),
        role=role,
    )


def parse_node_record(
    data: JsonMapping, endpoint: Endpoint, *, now: Timestamp | None = None
) -> NodeRecord:
    """Build a ``NodeRecord`` from a metrics response body."""
    workers = _mapping(data.get("workers"))
    latency = _mapping(data.get("latency"))
    cells = tuple(
        cell for cell in map(_cell, _sequence(data.get("cells"))) if cell is not None
    )
    owned_cells = tuple(
        value
        for value in _sequence(data.get("ownedCells"))
        if isinstance(value, int) and not isinstance(value, bool)
    )
    peers = tuple(
        value for value in _sequence(data.get("peers")) if isinstance(value, str)
    )

    return NodeRecord(
        node_id=_text(data.get("nodeId"), endpoint_node_id(endpoint)),
        endpoint=endpoint,
        peer_id=_text(data.get("peerId"), "unknown"),
        secure=_flag(data.get("secure")),
        tee_platform=_tee_platform(data.get("teePlatform")),
        tee_attested=_flag(data.get("teeAttested")),
        uptime=_number(data.get("uptime")),
        cells=cells,
        owned_cells=owned_cells,
        claimed_events=_integer(data.get("claimedEvents")),
        workers=WorkerMetrics(
            active=_integer(workers.get("active")),
            total=_integer(workers.get("total")),
            max=_integer(workers.get("max")),
        ),
        latency=LatencyMetrics(
            p50=_number(latency.get("p50")),
            p95=_number(latency.get("p95")),
            p99=_number(latency.get("p99")),
            avg=_number(latency.get("avg")),
            samples=_integer(latency.get("samples")),
        ),
        throughput=_number(data.get("throughput")),
        tasks_processed=_integer(data.get("tasksProcessed")),
        tasks_failed=_integer(data.get("tasksFailed")),
        fuel_consumed=_integer(data.get("fuelConsumed")),
        peers=peers,
        status=NodeStatus.HEALTHY,
        packet_loss=0.0,
        last_update=time.time() if now is None else now,
    )


def metrics_url(endpoint: Endpoint) -> str:
    base = endpoint if endpoint.startswith(("http://", "https://")) else f"http://{endpoint}"
    return f"{base}/metrics"


class MetricsFetcher:
    """Issues bounded metrics requests and parses the answers."""

    def __init__(
        self,
        timeout: DurationSeconds = MAX_FETCH_TIMEOUT,
        session: aiohttp.ClientSession | None = None,
    ) -> None:
        if timeout <= 0 or timeout > MAX_FETCH_TIMEOUT:
            raise ValueError(f"Fetch timeout must be in (0, {MAX_FETCH_TIMEOUT}] seconds")
        self.timeout = timeout
        self.session = session

    async def fetch(self, endpoint: Endpoint) -> FetchOutcome:
        async with client_session(self.session) as session:
            return await self._fetch(session, endpoint)

    async def fetch_all(self, endpoints: Iterable[Endpoint]) -> list[FetchOutcome]:
        """Fetch every endpoint concurrently; waits for all, order preserved."""
        targets = list(endpoints)
        if not targets:
            return []
        async with client_session(self.session) as session:
            return list(
                await asyncio.gather(
                    *(self._fetch(session, endpoint) for endpoint in targets)
                )
            )

    async def _fetch(
        self, session: aiohttp.ClientSession, endpoint: Endpoint
    ) -> FetchOutcome:
        try:
            async with session.get(
                metrics_url(endpoint),
                timeout=aiohttp.ClientTimeout(total=self.timeout),
                headers={"Accept": "application/json"},
            ) as response:
                if not 200 <= response.status < 300:
                    return FetchFailure(endpoint, f"HTTP {response.status}")
                data = await response.json(content_type=None)
        except REQUEST_ERRORS as e:
            logger.debug(f"Metrics fetch from {endpoint} failed: {e!r}")
            return FetchFailure(endpoint, type(e).__name__)

        if not isinstance(data, dict):
            return FetchFailure(endpoint, MALFORMED_PAYLOAD)
        try:
            record = parse_node_record(data, endpoint)
        except Exception as e:
            logger.warning(f"Unparseable metrics from {endpoint}: {e!r}")
            return FetchFailure(endpoint, MALFORMED_PAYLOAD)
        return FetchSuccess(endpoint, record)
