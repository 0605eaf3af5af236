from __future__ import annotations

from enum import StrEnum
from pathlib import Path

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from fleetmon.core.logging import LogScope
from fleetmon.core.persistence.config import PersistenceConfig, PersistenceMode

NETWORK_PRESETS: dict[str, str] = {
    "mainnet": "https://registry.maikers.com",
    "devnet": "https://registry-devnet.maikers.com",
}


class ProbeMode(StrEnum):
    """When the local port prober runs during rediscovery."""

    AUTO = "auto"  # only when no directory is configured
    ALWAYS = "always"
    NEVER = "never"


class MonitorSettings(BaseSettings):
    """Fleet monitor configuration settings."""

    model_config = SettingsConfigDict(
        env_prefix="FLEETMON_", env_file=".env", extra="ignore"
    )

    network: str = Field(
        "devnet", description="Named network whose registry is used as directory."
    )
    directory_url: str | None = Field(
        None,
        description="Directory service base URL. Overrides the network preset; "
        "an empty string disables directory discovery.",
    )
    use_network_directory: bool = Field(
        False,
        description="Fall back to the network preset registry when no "
        "directory_url is given.",
    )
    poll_interval: float = Field(
        5.0, ge=0.5, description="Seconds between metrics polls."
    )
    rediscovery_interval: float = Field(
        60.0, ge=1.0, description="Seconds between discovery cycles."
    )
    replication_factor: int = Field(
        3, ge=1, description="Replicas a cell needs to be considered healthy."
    )
    total_cells: int = Field(64, ge=1, description="Number of cells in the fabric.")
    fetch_timeout: float = Field(
        3.0, gt=0, le=3.0, description="Per-endpoint metrics request timeout."
    )
    directory_timeout: float = Field(
        5.0, gt=0, description="Directory service request timeout."
    )
    probe_timeout: float = Field(
        1.0, gt=0, le=1.0, description="Per-port health probe timeout."
    )
    probe_mode: ProbeMode = Field(ProbeMode.AUTO, description="Port probing policy.")
    probe_hosts: tuple[str, ...] = Field(
        ("localhost",), description="Hosts scanned by the port prober."
    )
    probe_port_start: int = Field(8080, ge=1, le=65535)
    probe_port_end: int = Field(8099, ge=1, le=65535)
    time_series_points: int = Field(
        60, ge=1, description="Length of the rolling time series window."
    )
    zero_offline_activity: bool = Field(
        False,
        description="Report zero throughput and active workers for offline nodes.",
    )
    hide_offline_nodes: bool = Field(
        False, description="Consumers hide offline nodes from node listings."
    )
    persistence_mode: PersistenceMode = Field(
        PersistenceMode.SQLITE, description="Where discovered endpoints are kept."
    )
    data_dir: Path = Field(
        Path("/tmp/fleetmon_data"), description="Directory for persisted state."
    )
    simulate: bool = Field(False, description="Use the fault simulation model.")
    simulated_node_count: int = Field(6, ge=1)
    offline_chance: float = Field(0.02, ge=0.0, le=1.0)
    degraded_chance: float = Field(0.05, ge=0.0, le=1.0)
    latency_spike_chance: float = Field(0.05, ge=0.0, le=1.0)
    packet_loss_chance: float = Field(0.05, ge=0.0, le=1.0)
    simulation_seed: int | None = Field(None, description="Seed for repeatable runs.")
    log_level: str = Field("INFO", description="Log level for the stderr handler.")
    debug_scopes: tuple[LogScope, ...] = Field(
        (), description="Subsystems that log at DEBUG whatever the log level."
    )

    @model_validator(mode="after")
    def _check_ranges(self) -> MonitorSettings:
        if self.probe_port_end < self.probe_port_start:
            raise ValueError("probe_port_end must not be below probe_port_start")
        if self.offline_chance + self.degraded_chance > 1.0:
            raise ValueError("offline_chance + degraded_chance must not exceed 1.0")
        if self.network not in NETWORK_PRESETS:
            raise ValueError(f"Unknown network: {self.network}")
        return self

    def resolved_directory_url(self) -> str | None:
        """Directory base URL in effect, or ``None`` when discovery is local only."""
        if self.directory_url is not None:
            return self.directory_url.rstrip("/") or None
        if self.use_network_directory:
            return NETWORK_PRESETS[self.network]
        return None

    def probe_ports(self) -> range:
        return range(self.probe_port_start, self.probe_port_end + 1)

    def should_probe(self) -> bool:
        if self.probe_mode is ProbeMode.ALWAYS:
            return True
        if self.probe_mode is ProbeMode.NEVER:
            return False
        return self.resolved_directory_url() is None

    def persistence_config(self) -> PersistenceConfig:
        return PersistenceConfig(mode=self.persistence_mode, data_dir=self.data_dir)
