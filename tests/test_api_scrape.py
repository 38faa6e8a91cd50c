from pathlib import Path
import sys
from datetime import datetime, timezone

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from fastapi import FastAPI
from fastapi.testclient import TestClient

from api.deps import get_controller
from api.routers import scrape
from processor.models import AcquisitionFailure, AcquisitionResult, Creative
from processor.pipeline import build_report


class StubController:
    def __init__(self, outcome):
        self.outcome = outcome
        self.calls = []

    async def run(self, reference, options=None):
        self.calls.append((reference, options))
        return self.outcome


def _client(outcome):
    app = FastAPI()
    app.include_router(scrape.router)
    stub = StubController(outcome)
    app.dependency_overrides[get_controller] = lambda: stub
    return TestClient(app), stub


def test_success_is_serialized():
    creatives = [Creative(creative_id="ad-1", detail_id="1", total_reach=10,
                          started_at=datetime(2025, 1, 2, tzinfo=timezone.utc))]
    result = AcquisitionResult(
        page_id="123", page_name="Acme", creatives=creatives, total_found=1,
        strategy="browser", fetched_at=datetime(2025, 6, 1, tzinfo=timezone.utc),
        facets=build_report(creatives),
    )
    client, stub = _client(result)

    resp = client.post("/api/scrape-ads", json={
        "url": "123", "countries": ["de", " "], "enrich": True, "period": "weekly",
    })

    assert resp.status_code == 200
    body = resp.json()
    assert body["success"] is True
    assert body["creatives"][0]["creative_id"] == "ad-1"
    assert body["facets"]["trends"]["period"] == "monthly"
    reference, options = stub.calls[0]
    assert reference == "123"
    assert options.countries == ["DE"]
    assert options.enrich is True
    assert options.period == "weekly"


def test_failure_status_codes():
    for kind, status in [("invalid_input", 400), ("upstream", 502), ("timeout", 504), ("acquisition", 500)]:
        client, _ = _client(AcquisitionFailure(error="x", kind=kind))
        resp = client.post("/api/scrape-ads", json={"reference": "123"})
        assert resp.status_code == status
        assert resp.json()["success"] is False
        assert resp.json()["kind"] == kind


def test_reference_required():
    client, stub = _client(AcquisitionFailure(error="x", kind="invalid_input"))
    resp = client.post("/api/scrape-ads", json={"countries": ["DE"]})
    assert resp.status_code == 422
    assert stub.calls == []


def test_unknown_strategy_rejected():
    client, _ = _client(AcquisitionFailure(error="x", kind="invalid_input"))
    resp = client.post("/api/scrape-ads", json={"reference": "123", "strategy": "magic"})
    assert resp.status_code == 422
