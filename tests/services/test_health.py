"""Health probes."""

import stockroom.infrastructure.payload_codec as codec_module


async def test_liveness(client):
    response = await client.get("/api/v1/health/")
    assert response.status_code == 200
    assert response.json()["status"] == "healthy"


async def test_ready_with_db_and_codec(client):
    response = await client.get("/api/v1/health/ready")
    assert response.status_code == 200
    assert response.json()["checks"]["encryption"] == "loaded"


async def test_not_ready_without_codec(client, monkeypatch):
    monkeypatch.setattr(codec_module, "codec", None)
    response = await client.get("/api/v1/health/ready")
    assert response.status_code == 503
    assert response.json()["reason"] == "encryption_key_missing"
