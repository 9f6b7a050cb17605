from __future__ import annotations

from typing import Any

import pytest
import requests

from fhir.client import FhirClient, FhirHttpError
from fhir.models import FhirResource
from replication.adapters.fhir import FhirNodeSink


class _FakeResponse:
    def __init__(self, payload: Any, *, status_code: int = 200, content: bytes | None = None) -> None:
        self._payload = payload
        self.status_code = status_code
        self.content = content if content is not None else (b"{}" if payload is not None else b"")

    def json(self) -> Any:
        if self._payload is None:
            raise ValueError("no json payload")
        return self._payload


@pytest.mark.asyncio
async def test_get_builds_fhir_url_and_decodes_json(monkeypatch: pytest.MonkeyPatch) -> None:
    captured: dict[str, Any] = {}

    def fake_request(method: str, url: str, *, headers: dict[str, str], json: Any, timeout: float, verify: bool):
        captured.update(method=method, url=url, headers=headers, json=json, timeout=timeout, verify=verify)
        return _FakeResponse({"resourceType": "Encounter", "id": "enc-1"})

    monkeypatch.setattr("fhir.client.requests.request", fake_request)

    client = FhirClient("http://fhir-proxy:7000/", verify_tls=False, timeout=5.0)
    payload = await client.get("/Encounter/enc-1")

    assert payload == {"resourceType": "Encounter", "id": "enc-1"}
    assert captured["method"] == "GET"
    assert captured["url"] == "http://fhir-proxy:7000/fhir/Encounter/enc-1"
    assert captured["json"] is None
    assert "Content-Type" not in captured["headers"]
    assert captured["timeout"] == 5.0
    assert captured["verify"] is False


@pytest.mark.asyncio
async def test_put_sends_fhir_json_and_returns_status(monkeypatch: pytest.MonkeyPatch) -> None:
    captured: dict[str, Any] = {}

    def fake_request(method: str, url: str, *, headers: dict[str, str], json: Any, timeout: float, verify: bool):
        captured.update(method=method, url=url, headers=headers, json=json)
        return _FakeResponse(None, status_code=201)

    monkeypatch.setattr("fhir.client.requests.request", fake_request)

    body = {"resourceType": "Patient", "id": "pat-1"}
    status = await FhirClient("https://node:8080").put("Patient/pat-1", body)

    assert status == 201
    assert captured["method"] == "PUT"
    assert captured["url"] == "https://node:8080/fhir/Patient/pat-1"
    assert captured["headers"]["Content-Type"] == "application/fhir+json"
    assert captured["json"] == body


@pytest.mark.asyncio
@pytest.mark.parametrize("payload", [{"resourceType": "OperationOutcome"}, None])
async def test_non_2xx_raises_http_error(monkeypatch: pytest.MonkeyPatch, payload: Any) -> None:
    def fake_request(method: str, url: str, **kwargs: Any) -> _FakeResponse:
        return _FakeResponse(payload, status_code=404, content=b"not json" if payload is None else None)

    monkeypatch.setattr("fhir.client.requests.request", fake_request)

    with pytest.raises(FhirHttpError) as excinfo:
        await FhirClient("http://proxy").get("/Encounter/missing")

    assert excinfo.value.status_code == 404
    assert excinfo.value.payload == payload
    assert excinfo.value.url == "http://proxy/fhir/Encounter/missing"


@pytest.mark.asyncio
async def test_transport_errors_propagate(monkeypatch: pytest.MonkeyPatch) -> None:
    def fake_request(method: str, url: str, **kwargs: Any) -> _FakeResponse:
        raise requests.ConnectionError("connection refused")

    monkeypatch.setattr("fhir.client.requests.request", fake_request)

    with pytest.raises(requests.RequestException):
        await FhirClient("http://proxy").get("/Encounter/enc-1")


@pytest.mark.asyncio
async def test_put_accepts_2xx_with_non_json_body(monkeypatch: pytest.MonkeyPatch) -> None:
    class _TextResponse:
        status_code = 201
        content = b"Created"

        def json(self) -> Any:
            raise requests.JSONDecodeError("Expecting value", "Created", 0)

    monkeypatch.setattr("fhir.client.requests.request", lambda method, url, **kwargs: _TextResponse())

    client = FhirClient("http://node")
    assert await client.put("/Encounter/enc-1", {"resourceType": "Encounter", "id": "enc-1"}) == 201

    sink = FhirNodeSink(client)
    resource = FhirResource.from_api({"resourceType": "Encounter", "id": "enc-1"})
    assert await sink.deliver(resource) == 201
