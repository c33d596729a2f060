"""
System smoke test: full API flow in-process.
Verifies health, validation submission, structured input errors and status.
Backends are scripted, so no proof assistant needs to be installed.
"""

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from conftest import Script, ScriptedAdapter
from crossproof.engines.backends.base import BackendRegistry
from crossproof.engines.cache import ResultCache
from crossproof.main import app
from crossproof.orchestration.orchestrator import ValidationOrchestrator
from crossproof.schemas.statements import BackendKind

API = "/api/v1/validations"


def _statement(sid, conclusion="P", dependencies=()):
    return {
        "id": sid,
        "natural_language": f"Statement {sid}",
        "formal_representations": {
            "lean": f"theorem {sid} : {conclusion} := by trivial",
            "coq": f"Theorem {sid} : {conclusion}.\nProof. trivial. Qed.",
        },
        "dependencies": list(dependencies),
        "conclusion": conclusion,
    }


CONFIG = {
    "primary": "lean",
    "fallbacks": ["coq"],
    "timeouts": {"quick_check": 1, "full_verification": 2, "cross_validation": 2, "max_total_time": 5},
}


@pytest.fixture
def orchestrator() -> ValidationOrchestrator:
    registry = BackendRegistry([
        ScriptedAdapter(BackendKind.LEAN),
        ScriptedAdapter(BackendKind.COQ, default=Script(confidence=0.9)),
    ])
    return ValidationOrchestrator(registry, ResultCache())


@pytest_asyncio.fixture
async def client(orchestrator):
    """Async client with a scripted orchestrator in place of the lifespan one."""
    app.state.orchestrator = orchestrator
    try:
        async with AsyncClient(
            transport=ASGITransport(app=app),
            base_url="http://test",
        ) as ac:
            yield ac
    finally:
        del app.state.orchestrator


@pytest.mark.asyncio
async def test_health(client: AsyncClient):
    """Health endpoint reports availability of every registered backend."""
    r = await client.get("/health")
    assert r.status_code == 200
    data = r.json()
    assert data["status"] == "ok"
    assert data["backends"] == {"lean": True, "coq": True}
    assert "X-Request-ID" in r.headers


@pytest.mark.asyncio
async def test_validation_accepted(client: AsyncClient):
    r = await client.post(API, json={
        "statements": [_statement("s1"), _statement("s2", dependencies=["s1"])],
        "config": CONFIG,
    })
    assert r.status_code == 200, r.text
    data = r.json()
    assert data["accepted"] is True
    assert data["rejection_reasons"] == []
    assert data["primary_validation"]["backend"] == "lean"
    assert set(data["cross_validation"]) == {"coq"}
    assert set(data["statement_results"]) == {"s1", "s2"}
    assert data["metadata"]["assistants_used"] == ["lean", "coq"]
    assert data["complexity"]["dependency_depth"] == 2


@pytest.mark.asyncio
async def test_negative_verdict_is_200(client: AsyncClient):
    r = await client.post(API, json={
        "statements": [_statement("s1", "Even n"), _statement("s2", "Odd n")],
        "config": CONFIG,
    })
    assert r.status_code == 200
    data = r.json()
    assert data["accepted"] is False
    assert data["consistency"]["external_consistent"] is False
    assert len(data["consistency"]["contradictions"]) == 1


@pytest.mark.asyncio
async def test_claims_only_request(client: AsyncClient):
    claim = {
        "id": "c1",
        "claim": "P holds",
        "formal_statements": [_statement("s1")],
        "location": {"start": 0, "end": 7},
    }
    r = await client.post(API, json={"claims": [claim], "config": CONFIG})
    assert r.status_code == 200, r.text
    assert list(r.json()["statement_results"]) == ["s1"]


@pytest.mark.asyncio
async def test_malformed_statement_set(client: AsyncClient):
    """Input errors come back as 422 with every issue listed."""
    r = await client.post(API, json={
        "statements": [_statement("s1", dependencies=["s1"]), _statement("s1")],
        "config": CONFIG,
    })
    assert r.status_code == 422
    data = r.json()
    assert data["code"] == "invalid_input"
    assert sorted(issue["code"] for issue in data["issues"]) == ["duplicate_statement", "self_dependency"]


@pytest.mark.asyncio
async def test_schema_error(client: AsyncClient):
    r = await client.post(API, json={"statements": [{"id": "s1"}]})
    assert r.status_code == 422
    data = r.json()
    assert data["detail"] == "Validation error"
    assert any(e["field"].endswith("conclusion") for e in data["errors"])


@pytest.mark.asyncio
async def test_status_after_validation(client: AsyncClient):
    await client.post(API, json={"statements": [_statement("s1")], "config": CONFIG})
    r = await client.get(f"{API}/status")
    assert r.status_code == 200
    data = r.json()
    assert data["status"] == "ready"
    assert data["total_validations"] == 1
    assert data["backends"]["lean"]["validations"] == 1
    assert data["cache"]["size"] == 2.0


@pytest.mark.asyncio
async def test_engine_not_running():
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        r = await ac.get(f"{API}/status")
    assert r.status_code == 503


@pytest.mark.asyncio
async def test_health_degraded_when_backend_missing():
    app.state.orchestrator = ValidationOrchestrator(
        BackendRegistry([ScriptedAdapter(BackendKind.LEAN), ScriptedAdapter(BackendKind.COQ, available=False)]),
        ResultCache(),
    )
    try:
        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
            r = await ac.get("/health")
            status_r = await ac.get(f"{API}/status")
    finally:
        del app.state.orchestrator
    assert r.json()["status"] == "degraded"
    assert r.json()["backends"] == {"lean": True, "coq": False}
    assert status_r.json()["backends"]["coq"]["available"] is False
