"""FHIR REST Resource Store.

ResourceStorePort implementation backed by a FHIR R4 REST server.

OAuth2 flow:
  1. POST {base}/oauth2/token with grant_type=client_credentials to obtain a
     bearer token; the token is cached and reused until it expires
     (refreshed automatically 30 s before expiry).
  2. All FHIR requests go to {base}/fhir/R4 and carry the bearer token.

Status mapping:
  - 401 / 403  -> PermissionDeniedError (server message carried verbatim)
  - 404 / 410  -> NotFoundError
  - other non-2xx and transport errors -> PersistenceError
"""

import logging
import time
from typing import Any, Optional

import httpx

from medrecords.domain.ports import (
    NotFoundError,
    PermissionDeniedError,
    PersistenceError,
    Resource,
    ResourceStorePort,
    SearchParams,
)
from medrecords.infrastructure.config_manager import StoreConfig

logger = logging.getLogger(__name__)

# Seconds before token expiry at which a proactive refresh is triggered.
_TOKEN_REFRESH_BUFFER_S = 30

FHIR_CONTENT_TYPE = "application/fhir+json"


def _outcome_message(response: httpx.Response) -> str:
    """Diagnostics of an OperationOutcome body, or the raw body text."""
    try:
        body = response.json()
    except ValueError:
        return response.text or response.reason_phrase
    if isinstance(body, dict) and body.get("resourceType") == "OperationOutcome":
        messages = [
            issue.get("diagnostics") or (issue.get("details") or {}).get("text")
            for issue in body.get("issue") or []
        ]
        messages = [m for m in messages if m]
        if messages:
            return "; ".join(messages)
    return response.text or response.reason_phrase


def _query(params: Optional[SearchParams]) -> list[tuple[str, str]]:
    """Flatten search params; list values become repeated parameters (AND)."""
    query = []
    for name, value in (params or {}).items():
        if isinstance(value, str):
            query.append((name, value))
        else:
            query.extend((name, str(item)) for item in value)
    return query


class FHIRResourceStore(ResourceStorePort):
    """FHIR R4 store using OAuth2 client credentials.

    Args:
        store_config: Store configuration with base URL and client credentials
        client: Pre-built ``httpx.Client`` (tests pass one with a MockTransport)

    Raises:
        ConfigurationError: If the client credentials are missing
    """

    def __init__(self, store_config: StoreConfig, client: Optional[httpx.Client] = None) -> None:
        store_config.require_fhir_credentials()
        self.base_url = store_config.fhir_base_url.rstrip("/")
        self._client_id = store_config.client_id
        self._client_secret = store_config.client_secret
        self._http = client or httpx.Client(timeout=store_config.timeout)

        self._access_token: Optional[str] = None
        self._token_expires_at: float = 0.0

    @property
    def _token_url(self) -> str:
        return f"{self.base_url}/oauth2/token"

    @property
    def _fhir_base(self) -> str:
        return f"{self.base_url}/fhir/R4"

    # ── OAuth2 ───────────────────────────────────────────────────────────────

    def _fetch_token(self) -> None:
        form_data = {
            "grant_type": "client_credentials",
            "client_id": self._client_id,
            "client_secret": self._client_secret.get_secret_value(),
        }
        try:
            resp = self._http.post(
                self._token_url,
                data=form_data,
                headers={"Content-Type": "application/x-www-form-urlencoded"},
            )
        except httpx.HTTPError as exc:
            raise PersistenceError(f"Token request failed: {exc}", operation="authenticate") from exc

        if resp.status_code in (400, 401, 403):
            raise PermissionDeniedError(
                f"Token endpoint returned {resp.status_code}: {_outcome_message(resp)}",
                operation="authenticate",
            )
        if resp.status_code != 200:
            raise PersistenceError(
                f"Token endpoint returned {resp.status_code}: {_outcome_message(resp)}",
                operation="authenticate",
            )

        token_data = resp.json()
        self._access_token = token_data["access_token"]
        expires_in = int(token_data.get("expires_in", 3600))
        self._token_expires_at = time.monotonic() + expires_in
        logger.info(f"FHIR bearer token obtained (expires_in={expires_in}s)")

    def _ensure_token(self) -> str:
        """Valid bearer token, fetched or refreshed when necessary."""
        if self._access_token and time.monotonic() < self._token_expires_at - _TOKEN_REFRESH_BUFFER_S:
            return self._access_token
        logger.debug("FHIR token expired or absent, fetching new token")
        self._fetch_token()
        return self._access_token

    def _headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self._ensure_token()}",
            "Accept": FHIR_CONTENT_TYPE,
            "Content-Type": FHIR_CONTENT_TYPE,
        }

    # ── Request helper ───────────────────────────────────────────────────────

    def _request(
        self,
        method: str,
        path: str,
        operation: str,
        *,
        params: Optional[list[tuple[str, str]]] = None,
        json: Optional[dict[str, Any]] = None,
    ) -> dict[str, Any]:
        """Execute an authenticated FHIR request and return the parsed JSON body.

        Raises:
            PermissionDeniedError: On 401 / 403
            NotFoundError: On 404 / 410
            PersistenceError: On any other non-2xx status or transport error
        """
        url = f"{self._fhir_base}{path}"
        try:
            resp = self._http.request(method, url, headers=self._headers(), params=params, json=json)
        except httpx.HTTPError as exc:
            raise PersistenceError(
                f"{method} {path} failed: {exc}", operation=operation, details={"path": path}
            ) from exc

        if resp.status_code in (401, 403):
            raise PermissionDeniedError(_outcome_message(resp), operation=operation)
        if resp.status_code in (404, 410):
            raise NotFoundError(f"{path.lstrip('/')} not found", resource_type=path.strip("/").split("/")[0])
        if resp.status_code not in range(200, 300):
            raise PersistenceError(
                f"{method} {path} returned {resp.status_code}: {_outcome_message(resp)}",
                operation=operation,
                details={"path": path, "status_code": resp.status_code},
            )

        return resp.json() if resp.content else {}

    # ── ResourceStorePort ────────────────────────────────────────────────────

    def create(self, resource: Resource) -> Resource:
        resource_type = resource.get("resourceType")
        if not resource_type:
            raise PersistenceError("Resource has no resourceType", operation="create")
        body = {k: v for k, v in resource.items() if k not in ("id", "meta")}
        return self._request("POST", f"/{resource_type}", "create", json=body)

    def read(self, resource_type: str, resource_id: str) -> Resource:
        return self._request("GET", f"/{resource_type}/{resource_id}", "read")

    def update(self, resource: Resource) -> Resource:
        resource_type, resource_id = resource.get("resourceType"), resource.get("id")
        if not resource_type or not resource_id:
            raise NotFoundError("Cannot update a resource without type and id", resource_type=resource_type)
        return self._request("PUT", f"/{resource_type}/{resource_id}", "update", json=resource)

    def delete(self, resource_type: str, resource_id: str) -> None:
        self._request("DELETE", f"/{resource_type}/{resource_id}", "delete")
        logger.debug(f"Deleted {resource_type}/{resource_id}")

    def search(self, resource_type: str, params: Optional[SearchParams] = None) -> list[Resource]:
        bundle = self._request("GET", f"/{resource_type}", "search", params=_query(params))
        return [
            entry["resource"]
            for entry in bundle.get("entry") or []
            if (entry.get("resource") or {}).get("resourceType") == resource_type
        ]

    def close(self) -> None:
        self._http.close()
        logger.debug("FHIR HTTP transport closed")

    def __enter__(self) -> "FHIRResourceStore":
        return self

    def __exit__(self, *_: Any) -> None:
        self.close()
