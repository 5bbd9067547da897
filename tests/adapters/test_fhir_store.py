"""Unit tests for the FHIR REST resource store.

All HTTP traffic goes through an ``httpx.MockTransport``; no server is needed.

Tests cover:
- OAuth2 client-credentials token fetch and caching
- Status code mapping to domain errors
- Create/read/update/delete/search request shapes
"""

import json

import httpx
import pytest
from pydantic import SecretStr

from medrecords.adapters.storage import FHIRResourceStore
from medrecords.domain.ports import (
    ConfigurationError,
    NotFoundError,
    PermissionDeniedError,
    PersistenceError,
)
from medrecords.infrastructure.config_manager import StoreConfig

BASE_URL = "http://fhir.test"


@pytest.fixture
def config():
    return StoreConfig(
        store_type="fhir",
        fhir_base_url=BASE_URL,
        client_id="client",
        client_secret=SecretStr("secret"),
    )


class FakeServer:
    """Records requests and answers FHIR calls from a route table."""

    def __init__(self, routes=None, token_status=200, expires_in=3600):
        self.routes = routes or {}
        self.token_status = token_status
        self.expires_in = expires_in
        self.requests = []
        self.token_requests = 0

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if request.url.path == "/oauth2/token":
            self.token_requests += 1
            if self.token_status != 200:
                return httpx.Response(self.token_status, json={"error": "invalid_client"})
            return httpx.Response(200, json={"access_token": f"token-{self.token_requests}", "expires_in": self.expires_in})

        key = (request.method, request.url.path)
        if key not in self.routes:
            return httpx.Response(404, json={"resourceType": "OperationOutcome"})
        status, body = self.routes[key]
        return httpx.Response(status, json=body)


def _store(config, server):
    return FHIRResourceStore(config, client=httpx.Client(transport=httpx.MockTransport(server)))


def _outcome(message):
    return {"resourceType": "OperationOutcome", "issue": [{"severity": "error", "diagnostics": message}]}


class TestFHIRAuthentication:
    """Test suite for OAuth2 token handling."""

    def test_missing_credentials(self):
        """Test that a store without client credentials cannot be built."""
        with pytest.raises(ConfigurationError):
            FHIRResourceStore(StoreConfig(store_type="fhir"))

    def test_token_request_shape(self, config):
        """Test the client-credentials form post."""
        server = FakeServer({("GET", "/fhir/R4/Patient/p1"): (200, {"resourceType": "Patient", "id": "p1"})})
        store = _store(config, server)

        store.read("Patient", "p1")

        token_request = server.requests[0]
        assert token_request.method == "POST"
        assert b"grant_type=client_credentials" in token_request.content
        assert b"client_secret=secret" in token_request.content
        assert server.requests[1].headers["Authorization"] == "Bearer token-1"

    def test_token_is_cached(self, config):
        """Test that one token serves several requests."""
        server = FakeServer({("GET", "/fhir/R4/Patient/p1"): (200, {"resourceType": "Patient", "id": "p1"})})
        store = _store(config, server)

        store.read("Patient", "p1")
        store.read("Patient", "p1")

        assert server.token_requests == 1

    def test_token_refreshed_near_expiry(self, config):
        """Test that a token inside the refresh buffer is replaced."""
        server = FakeServer(
            {("GET", "/fhir/R4/Patient/p1"): (200, {"resourceType": "Patient", "id": "p1"})},
            expires_in=10,
        )
        store = _store(config, server)

        store.read("Patient", "p1")
        store.read("Patient", "p1")

        assert server.token_requests == 2
        assert server.requests[-1].headers["Authorization"] == "Bearer token-2"

    def test_rejected_credentials(self, config):
        """Test that a refused token request is a permission error."""
        store = _store(config, FakeServer(token_status=401))

        with pytest.raises(PermissionDeniedError):
            store.read("Patient", "p1")

    def test_token_server_error(self, config):
        """Test that a failing token endpoint is a persistence error."""
        store = _store(config, FakeServer(token_status=503))

        with pytest.raises(PersistenceError):
            store.read("Patient", "p1")


class TestFHIRResourceStore:
    """Test suite for FHIRResourceStore operations."""

    def test_create_posts_without_id_and_meta(self, config):
        """Test that create sends the resource without id and meta."""
        server = FakeServer({("POST", "/fhir/R4/Patient"): (201, {"resourceType": "Patient", "id": "new-1"})})
        store = _store(config, server)

        saved = store.create({"resourceType": "Patient", "id": "mine", "meta": {"versionId": "9"}, "gender": "male"})

        assert saved["id"] == "new-1"
        sent = json.loads(server.requests[-1].content)
        assert sent == {"resourceType": "Patient", "gender": "male"}
        assert server.requests[-1].headers["Content-Type"] == "application/fhir+json"

    def test_update_puts_to_resource_url(self, config):
        """Test that update PUTs the whole resource."""
        server = FakeServer({("PUT", "/fhir/R4/Patient/p1"): (200, {"resourceType": "Patient", "id": "p1"})})
        store = _store(config, server)

        store.update({"resourceType": "Patient", "id": "p1", "gender": "female"})

        assert json.loads(server.requests[-1].content)["gender"] == "female"

    def test_update_without_id(self, config):
        """Test that update needs an id."""
        with pytest.raises(NotFoundError):
            _store(config, FakeServer()).update({"resourceType": "Patient"})

    def test_delete(self, config):
        """Test that delete sends DELETE."""
        server = FakeServer({("DELETE", "/fhir/R4/Coverage/c1"): (200, {})})
        store = _store(config, server)

        store.delete("Coverage", "c1")

        assert server.requests[-1].method == "DELETE"

    def test_forbidden_carries_server_message(self, config):
        """Test that 403 raises PermissionDeniedError with the server's diagnostics."""
        server = FakeServer({("POST", "/fhir/R4/ActivityDefinition"): (403, _outcome("Forbidden: write access"))})
        store = _store(config, server)

        with pytest.raises(PermissionDeniedError, match="Forbidden: write access"):
            store.create({"resourceType": "ActivityDefinition"})

    @pytest.mark.parametrize("status", [404, 410])
    def test_missing_resource(self, config, status):
        """Test that 404 and 410 raise NotFoundError."""
        server = FakeServer({("GET", "/fhir/R4/Patient/gone"): (status, _outcome("Gone"))})

        with pytest.raises(NotFoundError):
            _store(config, server).read("Patient", "gone")

    def test_server_error(self, config):
        """Test that other failures raise PersistenceError."""
        server = FakeServer({("GET", "/fhir/R4/Patient/p1"): (500, _outcome("Database down"))})

        with pytest.raises(PersistenceError, match="Database down"):
            _store(config, server).read("Patient", "p1")

    def test_transport_error(self, config):
        """Test that network failures raise PersistenceError."""
        def handler(request):
            if request.url.path == "/oauth2/token":
                return httpx.Response(200, json={"access_token": "t", "expires_in": 3600})
            raise httpx.ConnectError("connection refused", request=request)

        store = FHIRResourceStore(config, client=httpx.Client(transport=httpx.MockTransport(handler)))
        with pytest.raises(PersistenceError):
            store.read("Patient", "p1")

    def test_search_returns_bundle_resources(self, config):
        """Test that search unwraps bundle entries of the requested type."""
        bundle = {
            "resourceType": "Bundle",
            "entry": [
                {"resource": {"resourceType": "Encounter", "id": "e1"}},
                {"resource": {"resourceType": "OperationOutcome"}},
                {"resource": {"resourceType": "Encounter", "id": "e2"}},
            ],
        }
        server = FakeServer({("GET", "/fhir/R4/Encounter"): (200, bundle)})
        store = _store(config, server)

        found = store.search("Encounter", {"subject": "Patient/p1", "date": ["ge2024-01-01", "le2024-12-31"]})

        assert [r["id"] for r in found] == ["e1", "e2"]
        params = server.requests[-1].url.params
        assert params.get_list("date") == ["ge2024-01-01", "le2024-12-31"]
        assert params["subject"] == "Patient/p1"

    def test_empty_search(self, config):
        """Test that a bundle without entries gives an empty list."""
        server = FakeServer({("GET", "/fhir/R4/Coverage"): (200, {"resourceType": "Bundle"})})

        assert _store(config, server).search("Coverage") == []

    def test_context_manager_closes_client(self, config):
        """Test that leaving the context closes the HTTP client."""
        client = httpx.Client(transport=httpx.MockTransport(FakeServer()))
        with FHIRResourceStore(config, client=client):
            pass

        assert client.is_closed
