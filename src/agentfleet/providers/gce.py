"""Compute Engine client: REST calls over httpx."""

from __future__ import annotations
import logging
from typing import Any, Iterator

import httpx

from agentfleet.models.instance import WorkerInstance
from agentfleet.models.operation import OperationResult, OperationStatus
from agentfleet.providers.base import ComputeClient, TransientProviderError

logger = logging.getLogger("agentfleet.providers.gce")

DEFAULT_API_URL = "https://compute.googleapis.com/compute/v1"


def label_filter(labels: dict[str, str]) -> str:
    """Build a Compute Engine list filter matching every given label."""
    return " AND ".join(f'labels.{key} = "{value}"' for key, value in sorted(labels.items()))


class GceComputeClient(ComputeClient):
    """Talks to the Compute Engine v1 REST API.

    All calls are synchronous. Transport failures, non-2xx responses and
    malformed payloads surface as TransientProviderError.
    """

    def __init__(
        self,
        access_token: str | None = None,
        base_url: str = DEFAULT_API_URL,
        timeout: float = 30.0,
        transport: httpx.BaseTransport | None = None,
    ):
        headers = {"Accept": "application/json"}
        if access_token:
            headers["Authorization"] = f"Bearer {access_token}"
        self.base_url = base_url.rstrip("/")
        self._client = httpx.Client(
            base_url=self.base_url,
            headers=headers,
            timeout=timeout,
            transport=transport,
        )

    def close(self) -> None:
        self._client.close()

    def _request(self, method: str, path: str, **kwargs) -> dict[str, Any]:
        try:
            resp = self._client.request(method, path, **kwargs)
            resp.raise_for_status()
            return resp.json()
        except httpx.HTTPStatusError as e:
            raise TransientProviderError(
                f"{method} {path} failed: {e.response.status_code}: {e.response.text}",
                status_code=e.response.status_code,
            ) from e
        except httpx.HTTPError as e:
            raise TransientProviderError(f"{method} {path} failed: {e}") from e
        except ValueError as e:
            raise TransientProviderError(f"{method} {path} returned invalid JSON: {e}") from e

    def list_instances(
        self, project: str, labels: dict[str, str] | None = None
    ) -> Iterator[WorkerInstance]:
        params: dict[str, str] = {}
        if labels:
            params["filter"] = label_filter(labels)

        while True:
            data = self._request("GET", f"/projects/{project}/aggregated/instances", params=params)
            for scope, scoped in (data.get("items") or {}).items():
                for payload in scoped.get("instances", []):
                    try:
                        yield WorkerInstance.from_api(payload)
                    except KeyError as e:
                        raise TransientProviderError(
                            f"Malformed instance in {scope}: missing {e}"
                        ) from e

            page_token = data.get("nextPageToken")
            if not page_token:
                return
            params = {**params, "pageToken": page_token}

    def terminate_instance_async(self, project: str, zone: str, name: str) -> str:
        data = self._request("DELETE", f"/projects/{project}/zones/{zone}/instances/{name}")
        operation_id = data.get("name")
        if not operation_id:
            raise TransientProviderError(f"Delete of {name} returned no operation id")
        logger.debug(f"Delete of {name} started: operation {operation_id}")
        return operation_id

    def get_operation_status(
        self, project: str, zone: str, operation_id: str
    ) -> OperationResult:
        data = self._request("GET", f"/projects/{project}/zones/{zone}/operations/{operation_id}")
        status = data.get("status")
        if not status:
            raise TransientProviderError(f"Operation {operation_id} returned no status")
        try:
            status = OperationStatus(status)
        except ValueError:
            pass
        return OperationResult(status=status, error=data.get("error"))
