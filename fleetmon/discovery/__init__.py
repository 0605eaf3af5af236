"""
fleetmon discovery pipeline.

Directory lookup, local port probing, metrics polling, reconciliation into an
endpoint-keyed registry, cluster classification and the poll scheduler.
"""

from .classifier import StatusClassifier
from .directory_client import CandidateEndpoint, DirectoryClient, resolve_candidate
from .endpoint_store import EndpointStore
from .metrics_fetcher import (
    FetchFailure,
    FetchOutcome,
    FetchSuccess,
    MetricsFetcher,
    parse_node_record,
)
from .port_prober import PortProber
from .reconciliation import NodeRegistry, ReconcileResult
from .scheduler import PollScheduler
from .service import DiscoveryService

__all__ = [
    "CandidateEndpoint",
    "DirectoryClient",
    "DiscoveryService",
    "EndpointStore",
    "FetchFailure",
    "FetchOutcome",
    "FetchSuccess",
    "MetricsFetcher",
    "NodeRegistry",
    "PollScheduler",
    "PortProber",
    "ReconcileResult",
    "StatusClassifier",
    "parse_node_record",
    "resolve_candidate",
]
