"""Operator configuration, loaded from YAML or the environment."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Mapping, Optional

import pydantic
import yaml
from pydantic import BaseModel, Field, SecretStr

from route_monitor.dynatrace import DEFAULT_TIMEOUT_SECONDS, DynatraceApiClient
from route_monitor.errors import ConfigError

ENV_DYNATRACE_URL = "ROUTE_MONITOR_DYNATRACE_URL"
ENV_DYNATRACE_TOKEN = "ROUTE_MONITOR_DYNATRACE_TOKEN"
ENV_DYNATRACE_TIMEOUT = "ROUTE_MONITOR_DYNATRACE_TIMEOUT"

DEFAULT_FINALIZER_KEY = "dynatrace.routemonitoroperator.monitoring.openshift.io/finalizer"

# AWS region -> name of the public Dynatrace location running in it
DEFAULT_REGION_LOCATIONS = {
    "us-east-1": "N. Virginia",
    "us-east-2": "Ohio",
    "us-west-1": "N. California",
    "us-west-2": "Oregon",
    "ca-central-1": "Montreal",
    "eu-west-1": "Ireland",
    "eu-west-2": "London",
    "eu-west-3": "Paris",
    "eu-central-1": "Frankfurt",
    "ap-south-1": "Mumbai",
    "ap-southeast-1": "Singapore",
    "ap-southeast-2": "Sydney",
    "ap-northeast-1": "Tokyo",
    "sa-east-1": "Sao Paulo",
}


class DynatraceConfig(BaseModel):
    base_url: str = Field(..., min_length=1, description="Dynatrace API root URL")
    api_token: SecretStr = Field(..., description="API token with synthetic monitor scopes")
    timeout_seconds: float = Field(default=DEFAULT_TIMEOUT_SECONDS, gt=0)

    def build_client(self) -> DynatraceApiClient:
        return DynatraceApiClient(
            self.base_url,
            self.api_token.get_secret_value(),
            timeout=self.timeout_seconds,
        )


class OperatorConfig(BaseModel):
    dynatrace: DynatraceConfig
    finalizer_key: str = Field(default=DEFAULT_FINALIZER_KEY, min_length=1)
    private_location_name: str = Field(
        default="backplane",
        description="Substring identifying the private location for private clusters",
    )
    region_locations: dict[str, str] = Field(default_factory=lambda: dict(DEFAULT_REGION_LOCATIONS))
    monitor_name_prefix: str = ""

    @classmethod
    def from_yaml(cls, path: str | Path) -> OperatorConfig:
        """Load the configuration from a YAML file."""
        path = Path(path)
        try:
            with open(path, encoding="utf-8") as f:
                data = yaml.safe_load(f)
        except OSError as e:
            raise ConfigError(f"cannot read config file {path}: {e}") from e
        except yaml.YAMLError as e:
            raise ConfigError(f"config file {path} is not valid YAML: {e}") from e
        return cls._validate(data or {}, str(path))

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> OperatorConfig:
        """Build the configuration from ``ROUTE_MONITOR_*`` variables."""
        env = os.environ if environ is None else environ
        missing = [k for k in (ENV_DYNATRACE_URL, ENV_DYNATRACE_TOKEN) if not env.get(k)]
        if missing:
            raise ConfigError(f"missing environment variables: {', '.join(missing)}")

        dynatrace: dict[str, object] = {
            "base_url": env[ENV_DYNATRACE_URL],
            "api_token": env[ENV_DYNATRACE_TOKEN],
        }
        if env.get(ENV_DYNATRACE_TIMEOUT):
            dynatrace["timeout_seconds"] = env[ENV_DYNATRACE_TIMEOUT]
        return cls._validate({"dynatrace": dynatrace}, "environment")

    @classmethod
    def _validate(cls, data: object, source: str) -> OperatorConfig:
        try:
            return cls.model_validate(data)
        except pydantic.ValidationError as e:
            raise ConfigError(f"invalid configuration from {source}: {e}") from e

    def location_for_region(self, region: str) -> Optional[str]:
        return self.region_locations.get(region)
