"""
Configuration management (SSOT).

This module defines ALL configuration for the dfe_sync engine.
All config keys are defined here; no other module should invent config keys.

Key invariants:
- Every business location has its own channel (gateway URL, CNPJ, client
  certificate reference). Locations never share credentials.
- Certificate material itself is never loaded here, only file paths.
"""

import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

import yaml

from .errors import ConfigurationError


@dataclass
class LocationConfig:
    """Authenticated channel to the distribution service for one location.

    - gateway_url: HTTPS endpoint that speaks the distribution protocol
    - cnpj: tax ID of the business unit (interested party)
    - cert_path / key_path: client certificate (PEM) presented on the TLS
      handshake; key_path may be omitted when the PEM bundles the key
    """

    name: str
    cnpj: str
    gateway_url: str
    cert_path: Optional[str] = None
    key_path: Optional[str] = None
    # IBGE state code of the requester (31 = Minas Gerais)
    uf_code: str = "31"
    # 1 = production, 2 = homologation
    environment: str = "1"

    def client_cert(self) -> Optional[str | tuple[str, str]]:
        """Certificate argument in the shape requests expects."""
        if not self.cert_path:
            return None
        if self.key_path:
            return (self.cert_path, self.key_path)
        return self.cert_path

    def channel_problems(self) -> list[str]:
        """List reasons this channel cannot be used (empty if usable)."""
        problems: list[str] = []
        if not self.gateway_url:
            problems.append("gateway_url is not set")
        if not re.fullmatch(r"\d{14}", self.cnpj or ""):
            problems.append("cnpj must have 14 digits")
        if not self.cert_path:
            problems.append("cert_path is not set")
        for label, path in (("cert_path", self.cert_path), ("key_path", self.key_path)):
            if path and not Path(path).exists():
                problems.append(f"{label} does not exist: {path}")
        return problems


@dataclass
class DistributionConfig:
    """Distribution service client settings."""

    # Request timeout (seconds)
    timeout_seconds: int = 60
    # Retries for transient HTTP failures (5xx, 429)
    max_retries: int = 3
    backoff_factor: float = 0.5
    # Upper bound of batches fetched by a single sync while ultNSU < maxNSU
    max_batches_per_sync: int = 10


@dataclass
class CategorizationConfig:
    """Category inference settings."""

    # Optional YAML file overriding the built-in keyword table
    keyword_table_path: Optional[Path] = None


@dataclass
class ReconciliationConfig:
    """Reconciliation settings."""

    # Attempts per queued single-shot reconciliation job
    queue_max_retries: int = 3
    # Jobs processed per queue drain
    queue_batch_size: int = 20


@dataclass
class Config:
    """Application configuration (SSOT)."""

    locations: dict[str, LocationConfig] = field(default_factory=dict)
    distribution: DistributionConfig = field(default_factory=DistributionConfig)
    categorization: CategorizationConfig = field(default_factory=CategorizationConfig)
    reconciliation: ReconciliationConfig = field(default_factory=ReconciliationConfig)
    state_db_path: Path = field(default_factory=lambda: Path("data/state.db"))
    default_location: Optional[str] = None

    def get_location(self, name: Optional[str]) -> LocationConfig:
        """
        Resolve a location to a usable channel.

        Raises:
            ConfigurationError: unknown location or unusable channel
        """
        name = name or self.default_location
        if not name or name not in self.locations:
            raise ConfigurationError(f"Location not configured: {name!r}")
        location = self.locations[name]
        problems = location.channel_problems()
        if problems:
            raise ConfigurationError(
                f"Location '{name}' has no usable channel: {'; '.join(problems)}"
            )
        return location

    def validate(self) -> list[str]:
        """Validate configuration completeness and consistency.

        Returns:
            List of validation errors (empty if valid)
        """
        errors: list[str] = []

        if not self.locations:
            errors.append("at least one location is required")
        for name, location in self.locations.items():
            for problem in location.channel_problems():
                errors.append(f"locations.{name}: {problem}")

        if self.default_location and self.default_location not in self.locations:
            errors.append(f"default_location '{self.default_location}' is not a configured location")

        if self.distribution.max_batches_per_sync < 1:
            errors.append("distribution.max_batches_per_sync must be >= 1")

        if self.categorization.keyword_table_path and not self.categorization.keyword_table_path.exists():
            errors.append(
                f"categorization.keyword_table_path does not exist: {self.categorization.keyword_table_path}"
            )

        return errors


def location_env_prefix(name: str) -> str:
    """Environment prefix for a location, e.g. 'Ponte Nova' -> 'DFE_PONTE_NOVA_'."""
    slug = re.sub(r"[^A-Za-z0-9]+", "_", name).strip("_").upper()
    return f"DFE_{slug}_"


def load_config(config_path: Path) -> Config:
    """
    Load configuration from YAML file.

    Environment variables can override config values:
    - DFE_STATE_DB_PATH
    - DFE_DEFAULT_LOCATION
    - DFE_TIMEOUT (request timeout in seconds)
    - DFE_<LOCATION>_GATEWAY_URL
    - DFE_<LOCATION>_CNPJ
    - DFE_<LOCATION>_CERT
    - DFE_<LOCATION>_KEY
    - DFE_KEYWORD_TABLE (path to keyword table YAML)
    """
    if config_path.exists():
        with open(config_path) as f:
            data = yaml.safe_load(f) or {}
    else:
        data = {}

    # Locations
    locations: dict[str, LocationConfig] = {}
    for name, loc_data in (data.get("locations") or {}).items():
        loc_data = loc_data or {}
        prefix = location_env_prefix(name)
        locations[name] = LocationConfig(
            name=name,
            cnpj=str(os.environ.get(f"{prefix}CNPJ", loc_data.get("cnpj", ""))),
            gateway_url=os.environ.get(f"{prefix}GATEWAY_URL", loc_data.get("gateway_url", "")),
            cert_path=os.environ.get(f"{prefix}CERT", loc_data.get("cert_path")),
            key_path=os.environ.get(f"{prefix}KEY", loc_data.get("key_path")),
            uf_code=str(loc_data.get("uf_code", "31")),
            environment=str(loc_data.get("environment", "1")),
        )

    # Distribution client
    dist_data = data.get("distribution", {})
    distribution = DistributionConfig(
        timeout_seconds=int(os.environ.get(
            "DFE_TIMEOUT", dist_data.get("timeout_seconds", 60)
        )),
        max_retries=dist_data.get("max_retries", 3),
        backoff_factor=dist_data.get("backoff_factor", 0.5),
        max_batches_per_sync=dist_data.get("max_batches_per_sync", 10),
    )

    # Categorization
    cat_data = data.get("categorization", {})
    table_path = os.environ.get("DFE_KEYWORD_TABLE", cat_data.get("keyword_table_path"))
    categorization = CategorizationConfig(
        keyword_table_path=Path(table_path) if table_path else None,
    )

    # Reconciliation
    recon_data = data.get("reconciliation", {})
    reconciliation = ReconciliationConfig(
        queue_max_retries=recon_data.get("queue_max_retries", 3),
        queue_batch_size=recon_data.get("queue_batch_size", 20),
    )

    state_db = os.environ.get("DFE_STATE_DB_PATH", data.get("state_db_path", "data/state.db"))

    return Config(
        locations=locations,
        distribution=distribution,
        categorization=categorization,
        reconciliation=reconciliation,
        state_db_path=Path(state_db),
        default_location=os.environ.get("DFE_DEFAULT_LOCATION", data.get("default_location")),
    )


def create_default_config(config_path: Path) -> None:
    """Create a default configuration file."""
    default_config = """# SEFAZ Distribuição DF-e sync configuration
#
# One entry per business location. Each location talks to the distribution
# gateway with its own client certificate and CNPJ.
# Certificate paths can be overridden per location with
# DFE_<LOCATION>_CERT / DFE_<LOCATION>_KEY (e.g. DFE_PONTE_NOVA_CERT).

locations:
  Caratinga:
    cnpj: "00000000000000"
    gateway_url: "https://localhost:8443/api/sefaz-monitor"
    cert_path: null                        # PEM client certificate (required)
    key_path: null                         # PEM private key (if not bundled)
    uf_code: "31"
    environment: "1"                       # 1 = production, 2 = homologation

default_location: "Caratinga"

distribution:
  timeout_seconds: 60
  max_retries: 3
  backoff_factor: 0.5
  max_batches_per_sync: 10                 # Keep fetching while ultNSU < maxNSU

categorization:
  keyword_table_path: null                 # YAML override for the built-in table

reconciliation:
  queue_max_retries: 3
  queue_batch_size: 20

# State database path
state_db_path: "data/state.db"
"""

    config_path.parent.mkdir(parents=True, exist_ok=True)
    with open(config_path, "w") as f:
        f.write(default_config)
