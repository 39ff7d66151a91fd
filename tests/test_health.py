import json
import logging

from fastapi import status

from talentgrid.core.logging import TalentGridJsonFormatter, account_id_var, request_id_var

def test_health_check(client):
    """Test the /health endpoint returns 200 and up status."""
    response = client.get("/health")
    assert response.status_code == status.HTTP_200_OK
    data = response.json()
    assert data["status"] == "up"
    assert "version" in data
    assert "timestamp" in data

def test_readiness_check(client):
    """Test the /readiness endpoint returns 200 and database status."""
    response = client.get("/readiness")
    assert response.status_code == status.HTTP_200_OK
    data = response.json()
    assert data["status"] == "ready"
    assert data["components"]["database"] == "connected"

def test_root_endpoint(client):
    """Test the API root endpoint."""
    response = client.get("/")
    assert response.status_code == 200
    assert "TalentGrid" in response.json()["message"]

def test_request_id_is_echoed(client):
    """Correlation id supplied by the caller comes back on the response."""
    response = client.get("/health", headers={"X-Request-ID": "req-123"})
    assert response.headers["X-Request-ID"] == "req-123"

def test_health_reports_build(client):
    data = client.get("/health").json()
    assert set(data["build"]) == {"id", "commit"}

def test_log_records_carry_request_context():
    record = logging.LogRecord("talentgrid.test", logging.INFO, __file__, 1, "adjusted", None, None)
    request_token = request_id_var.set("req-9")
    account_token = account_id_var.set("acct-1")
    try:
        line = json.loads(TalentGridJsonFormatter("%(timestamp) %(level) %(name) %(message)").format(record))
    finally:
        account_id_var.reset(account_token)
        request_id_var.reset(request_token)
    assert (line["request_id"], line["account_id"], line["level"]) == ("req-9", "acct-1", "INFO")
