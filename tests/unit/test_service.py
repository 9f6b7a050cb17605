from __future__ import annotations

import json
from pathlib import Path

import pytest

from config import Config, FhirConfig, ReplicationConfig
from replication.adapters.fhir import FhirNodeSink, FhirProxySource
from replication.errors import ValidationError
from replication.models import EventResult
from replication.service import build_orchestrator, health, parse_event


@pytest.mark.parametrize("body", [{"uuid": "enc-1"}, {"id": "enc-1"}, {"uuid": "  enc-1 "}])
def test_parse_event_accepts_uuid_or_id(body: dict) -> None:
    assert parse_event(body).id == "enc-1"


@pytest.mark.parametrize("body", [{}, {"uuid": ""}, {"uuid": "   "}, {"uuid": 42}, None, ["enc-1"]])
def test_parse_event_rejects_missing_id(body) -> None:
    with pytest.raises(ValidationError):
        parse_event(body)


def test_health_is_static() -> None:
    assert health() == {"status": "ok"}


def test_error_result_maps_to_500_without_itemization() -> None:
    result = EventResult(
        status="error",
        event_id="enc-1",
        delivered_count=1,
        phase="aborted",
        error="fetch /Patient/pat-1 failed: HTTP 500",
    )
    assert result.http_status == 500
    assert result.to_response() == {
        "status": "error",
        "uuid": "enc-1",
        "error": "fetch /Patient/pat-1 failed: HTTP 500",
    }


def test_build_orchestrator_wires_config(tmp_path: Path) -> None:
    store = tmp_path / "seen.json"
    store.write_text(json.dumps(["enc-old"]), encoding="utf-8")
    cfg = Config(
        fhir=FhirConfig(proxy_url="http://proxy", node_url="http://node", verify_tls=False),
        replication=ReplicationConfig(seen_file=str(store), related_resource_types=("Observation", "Condition")),
    )

    orchestrator = build_orchestrator(cfg)

    assert orchestrator.suppressor.is_seen("enc-old")
    assert [s.render("enc-1") for s in orchestrator.related_resources] == [
        "/Observation?encounter=enc-1",
        "/Condition?encounter=enc-1",
    ]
    assert isinstance(orchestrator._source, FhirProxySource)
    assert isinstance(orchestrator._sink, FhirNodeSink)
    assert orchestrator._executor.max_attempts == 3


@pytest.mark.asyncio
async def test_restarted_service_treats_persisted_id_as_duplicate(tmp_path: Path) -> None:
    store = tmp_path / "seen.json"
    store.write_text(json.dumps(["enc-1"]), encoding="utf-8")
    cfg = Config(
        fhir=FhirConfig(proxy_url="http://127.0.0.1:9", node_url="http://127.0.0.1:9"),
        replication=ReplicationConfig(seen_file=str(store)),
    )

    result = await build_orchestrator(cfg).process_event("enc-1")

    assert result.status == "duplicate"
