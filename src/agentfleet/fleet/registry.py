"""Cloud registry: builds managed clouds from the [clouds] section of agentfleet.toml."""

from __future__ import annotations
import logging
import os
import re
import threading
from datetime import timedelta
from typing import Any, Callable, Dict

from agentfleet.fleet.cloud import (
    DEFAULT_CLOUD_ID_LABEL_KEY,
    DEFAULT_CONFIG_LABEL_KEY,
    ManagedCloud,
)
from agentfleet.fleet.nodes import NodeRegistry
from agentfleet.fleet.tracker import InstanceOperationTracker
from agentfleet.models.worker_config import WorkerConfig
from agentfleet.providers.base import ComputeClient
from agentfleet.providers.gce import DEFAULT_API_URL, GceComputeClient

logger = logging.getLogger("agentfleet.registry")

ClientFactory = Callable[[Dict[str, Any]], ComputeClient]


class CloudRegistry:
    """Registry of named clouds configured in agentfleet.toml.

    Example:
        [clouds.ci-east]
        project_id = "build-farm"
        access_token = "${GCE_TOKEN}"

        [[clouds.ci-east.configs]]
        name_prefix = "linux-small"
        max_instances = 4

    Clouds are built on first use and cached, so their trackers and
    allocator cursors live as long as the registry.
    """

    def __init__(
        self,
        clouds_config: Dict[str, Dict[str, Any]] | None = None,
        nodes: NodeRegistry | None = None,
        client_factory: ClientFactory | None = None,
        access_token: str | None = None,
        compute_api_url: str = DEFAULT_API_URL,
        provider_timeout: float = 30.0,
        operation_max_age: timedelta | None = None,
        config_label_key: str = DEFAULT_CONFIG_LABEL_KEY,
        cloud_id_label_key: str = DEFAULT_CLOUD_ID_LABEL_KEY,
    ):
        self._clouds_config = clouds_config or {}
        self.nodes = nodes or NodeRegistry()
        self._client_factory = client_factory or self._gce_client
        self.access_token = access_token
        self.compute_api_url = compute_api_url
        self.provider_timeout = provider_timeout
        self.operation_max_age = operation_max_age
        self.config_label_key = config_label_key
        self.cloud_id_label_key = cloud_id_label_key
        self._clouds: dict[str, ManagedCloud] = {}
        # Held while a cloud is built so concurrent callers share one tracker
        self._lock = threading.Lock()

    @classmethod
    def from_settings(cls, settings, **kwargs) -> "CloudRegistry":
        max_age = (
            timedelta(seconds=settings.operation_max_age_seconds)
            if settings.operation_max_age_seconds
            else None
        )
        return cls(
            settings.clouds,
            access_token=settings.access_token,
            compute_api_url=settings.compute_api_url,
            provider_timeout=settings.provider_timeout_seconds,
            operation_max_age=max_age,
            config_label_key=settings.config_label_key,
            cloud_id_label_key=settings.cloud_id_label_key,
            **kwargs,
        )

    def list_clouds(self) -> Dict[str, str]:
        """Map each configured cloud name to its project id."""
        return {
            name: config.get("project_id", "unknown")
            for name, config in self._clouds_config.items()
        }

    def get_cloud(self, name: str) -> ManagedCloud:
        """Get the managed cloud for a configured name.

        Raises:
            KeyError: If the cloud name is not configured
            ValueError: If the cloud config is invalid
        """
        with self._lock:
            if name not in self._clouds:
                self._clouds[name] = self._build_cloud(name)
            return self._clouds[name]

    def _build_cloud(self, name: str) -> ManagedCloud:
        if name not in self._clouds_config:
            raise KeyError(f"Cloud '{name}' not found. Available: {list(self._clouds_config.keys())}")

        config = self._resolve_env_vars(self._clouds_config[name])
        project_id = config.get("project_id")
        if not project_id:
            raise ValueError(f"Cloud '{name}' missing required 'project_id' field")

        configs = [WorkerConfig.from_dict(c) for c in config.get("configs", [])]
        client = self._client_factory(config)
        cloud = ManagedCloud(
            name=name,
            project_id=project_id,
            client=client,
            configs=configs,
            nodes=self.nodes,
            tracker=InstanceOperationTracker(client, project_id, max_age=self.operation_max_age),
            cloud_id=config.get("cloud_id", name),
            config_label_key=self.config_label_key,
            cloud_id_label_key=self.cloud_id_label_key,
        )
        logger.info(f"Loaded cloud {name} (project={project_id}, configs={len(configs)})")
        return cloud

    def managed_clouds(self) -> list[ManagedCloud]:
        """Every configured cloud. Clouds with broken config are logged and skipped."""
        clouds = []
        for name in self._clouds_config:
            try:
                clouds.append(self.get_cloud(name))
            except (KeyError, ValueError) as e:
                logger.error(f"Skipping cloud {name}: {e}")
        return clouds

    def close(self) -> None:
        with self._lock:
            for cloud in self._clouds.values():
                cloud.client.close()
            self._clouds.clear()

    def _gce_client(self, config: Dict[str, Any]) -> ComputeClient:
        return GceComputeClient(
            access_token=config.get("access_token", self.access_token),
            base_url=config.get("compute_api_url", self.compute_api_url),
            timeout=float(config.get("timeout_seconds", self.provider_timeout)),
        )

    def _resolve_env_vars(self, config: Dict[str, Any]) -> Dict[str, Any]:
        """Resolve ${ENV_VAR} and ${ENV_VAR:-default} references in config values.

        Raises:
            ValueError: If a required environment variable is not set
        """
        resolved = {}
        env_var_pattern = re.compile(r'\$\{([^}]+)\}')

        for key, value in config.items():
            if isinstance(value, str):
                resolved[key] = self._resolve_env_var_string(value, env_var_pattern)
            elif isinstance(value, dict):
                resolved[key] = self._resolve_env_vars(value)
            else:
                resolved[key] = value

        return resolved

    def _resolve_env_var_string(self, value: str, pattern: re.Pattern) -> str:
        def replace_env_var(match):
            var_expr = match.group(1)

            if ':-' in var_expr:
                var_name, default = var_expr.split(':-', 1)
                return os.environ.get(var_name.strip(), default)

            var_name = var_expr.strip()
            env_value = os.environ.get(var_name)
            if env_value is None:
                raise ValueError(f"Environment variable '{var_name}' is not set")
            return env_value

        return pattern.sub(replace_env_var, value)
