import json

from gym_workers.health import build_response
from gym_workers.metrics import record_job, record_projection, reset_metrics


def _body(response: str) -> dict:
    return json.loads(response.split("\r\n\r\n", 1)[1])


def test_health_ok():
    response = build_response("/health", "ok")
    assert response.startswith("HTTP/1.1 200 OK")
    body = _body(response)
    assert body["status"] == "ok"
    assert "jobs_processed" in body["metrics"]


def test_health_degraded_when_db_down():
    response = build_response("/health", "error")
    assert response.startswith("HTTP/1.1 503")
    assert _body(response)["db"] == "error"


def test_unknown_path():
    response = build_response("/metrics", "skipped")
    assert response.startswith("HTTP/1.1 404")
    assert _body(response) == {"error": "not_found"}


def test_metrics_break_down_by_job_and_projection():
    reset_metrics()
    record_job("projection.update", "completed")
    record_job("projection.retry", "dead")
    record_projection("member_activity", "checkin.created", 12.0, success=True)
    record_projection("member_activity", "workout.logged", 4.0, success=False)

    metrics = _body(build_response("/health", "ok"))["metrics"]
    reset_metrics()

    assert metrics["jobs_processed"] == 1
    assert metrics["jobs_dead"] == 1
    assert metrics["jobs"]["projection.retry"] == {"dead": 1}
    assert metrics["projections"]["member_activity"] == {
        "recomputes": 1,
        "failures": 1,
        "avg_duration_ms": 8.0,
        "events": {"checkin.created": 1, "workout.logged": 1},
    }
