import pytest
from fastapi.testclient import TestClient

from assessment.entities import ErrorLogEntry
from assessment.errors import ServiceUnavailable, UpstreamError
from assessment.llm_client import MODE_TEXT, RawModelOutput
from assessment.questions import ASSESSMENT_DIMENSIONS
from assessment.request_gate import RequestGate
from server import create_app

from conftest import SAMPLE_ANALYSIS, SAMPLE_PROFILE

ANALYSIS_BODY = {
    "userProfile": SAMPLE_PROFILE,
    "scores": {"dimensions": {"strategy": 3.0, "governance": 3.5}, "overall": 3.25},
    "maturityTier": {"name": "Developing", "level": 3},
}


def _answers(value):
    return {q["id"]: value for d in ASSESSMENT_DIMENSIONS for q in d["questions"]}


def _error_rows(session_factory):
    session = session_factory()
    try:
        return session.query(ErrorLogEntry).all()
    finally:
        session.close()


# -----------------------
# generate-analysis
# -----------------------

def test_generate_analysis_returns_structured_analysis(client):
    resp = client.post("/api/generate-analysis", json=ANALYSIS_BODY)

    assert resp.status_code == 200
    body = resp.json()
    assert body["success"] is True
    assert body["fidelity"] == "structured"
    assert body["analysis"] == SAMPLE_ANALYSIS


def test_generate_analysis_missing_fields_is_400(client):
    resp = client.post("/api/generate-analysis", json={"userProfile": SAMPLE_PROFILE})

    assert resp.status_code == 400
    assert resp.json() == {"error": "Missing required data"}


def test_generate_analysis_bad_scores_is_400(client):
    body = dict(ANALYSIS_BODY, scores={"overall": "very high"})

    resp = client.post("/api/generate-analysis", json=body)

    assert resp.status_code == 400


def test_non_object_body_is_400(client):
    resp = client.post("/api/generate-analysis", content="not json", headers={"Content-Type": "application/json"})

    assert resp.status_code == 400
    assert "error" in resp.json()


def test_wrong_method_is_405(client):
    resp = client.get("/api/generate-analysis")

    assert resp.status_code == 405
    assert resp.json() == {"error": "Method Not Allowed"}


def test_options_is_200(client):
    for path in ("/api/generate-analysis", "/api/save-results", "/api/get-results", "/api/log-error"):
        assert client.options(path).status_code == 200


def test_sixth_request_is_rate_limited(client, stub_client):
    headers = {"X-Forwarded-For": "203.0.113.7, 10.0.0.1"}
    for _ in range(5):
        assert client.post("/api/generate-analysis", json=ANALYSIS_BODY, headers=headers).status_code == 200

    resp = client.post("/api/generate-analysis", json=ANALYSIS_BODY, headers=headers)

    assert resp.status_code == 429
    assert resp.json()["retryAfter"] > 0
    assert int(resp.headers["Retry-After"]) == resp.json()["retryAfter"]
    assert len(stub_client.calls) == 5

    other = client.post("/api/generate-analysis", json=ANALYSIS_BODY, headers={"X-Forwarded-For": "198.51.100.2"})
    assert other.status_code == 200


def test_recovered_text_is_flagged(client, stub_client):
    stub_client.outputs = [RawModelOutput(
        mode=MODE_TEXT,
        text="1. Executive Summary\nThe company has a reasonable foundation for growth.\n",
    )]

    body = client.post("/api/generate-analysis", json=ANALYSIS_BODY).json()

    assert body["fidelity"] == "recovered_from_text"
    assert body["analysis"]["summary"] == "The company has a reasonable foundation for growth."


def test_unparseable_output_is_logged_with_error_id(client, stub_client, session_factory):
    stub_client.outputs = [RawModelOutput(mode=MODE_TEXT, text="Sorry, I cannot help with that.")]

    resp = client.post("/api/generate-analysis", json=ANALYSIS_BODY)

    assert resp.status_code == 502
    body = resp.json()
    assert body["retryable"] is True
    assert body["errorId"].startswith("ERR-")

    rows = _error_rows(session_factory)
    assert [row.id for row in rows] == [body["errorId"]]
    assert rows[0].payload["rawText"] == "Sorry, I cannot help with that."
    assert rows[0].payload["kind"] == "ParseError"
    assert rows[0].company_name == "Acme-Retail"


@pytest.mark.parametrize(
    "error, status, retryable",
    [
        (UpstreamError("HTTP 500", upstream_status=500), 502, True),
        (ServiceUnavailable("no key"), 503, False),
        (RuntimeError("unexpected"), 500, True),
    ],
)
def test_pipeline_failures_map_to_public_errors(client, stub_client, error, status, retryable):
    stub_client.error = error

    resp = client.post("/api/generate-analysis", json=ANALYSIS_BODY)

    assert resp.status_code == status
    body = resp.json()
    assert body["retryable"] is retryable
    assert "unexpected" not in body["error"]
    assert ("errorId" in body) is retryable


# -----------------------
# save-results / get-results
# -----------------------

def _save(client, headers=None):
    body = {
        "userProfile": SAMPLE_PROFILE,
        "results": {"scores": ANALYSIS_BODY["scores"], "analysis": SAMPLE_ANALYSIS, "maturityTier": ANALYSIS_BODY["maturityTier"]},
    }
    return client.post("/api/save-results", json=body, headers=headers or {})


def test_save_then_get_round_trips(client):
    saved = _save(client, {"Origin": "https://maturity.example.org"}).json()

    assert saved["success"] is True
    assert len(saved["resultId"]) == 8
    assert saved["shareUrl"] == f"https://maturity.example.org/results/{saved['resultId']}"

    resp = client.get("/api/get-results", params={"id": saved["resultId"]})
    assert resp.status_code == 200
    data = resp.json()["data"]
    assert data["id"] == saved["resultId"]
    assert data["analysis"] == SAMPLE_ANALYSIS
    assert data["scores"]["overall"] == 3.25
    assert data["tier"] == {"name": "Developing", "level": 3}
    assert data["profile"]["companyName"] == "Acme Retail"
    assert "createdAt" in data


def test_share_url_falls_back_to_referer_then_config(client):
    from_referer = _save(client, {"Referer": "https://app.example.net/assessment?step=9"}).json()
    assert from_referer["shareUrl"].startswith("https://app.example.net/results/")

    from_config = _save(client).json()
    assert from_config["shareUrl"].startswith("https://assessment.example.com/results/")


def test_save_results_missing_fields_is_400(client):
    assert client.post("/api/save-results", json={"userProfile": SAMPLE_PROFILE}).status_code == 400

    resp = client.post("/api/save-results", json={"userProfile": SAMPLE_PROFILE, "results": {"analysis": {}}})
    assert resp.status_code == 400


def test_get_results_errors(client):
    missing = client.get("/api/get-results")
    assert missing.status_code == 400
    assert missing.json() == {"error": "Missing result ID"}

    unknown = client.get("/api/get-results", params={"id": "ZZZZZZZZ"})
    assert unknown.status_code == 404
    assert unknown.json() == {"error": "Results not found or expired"}


# -----------------------
# log-error
# -----------------------

def test_log_error_records_entry(client, session_factory):
    resp = client.post("/api/log-error", json={"id": "ERR-CLIENT", "type": "UI_ERROR", "companyName": "Acme"})

    assert resp.status_code == 200
    assert resp.json()["errorId"] == "ERR-CLIENT"
    assert [row.id for row in _error_rows(session_factory)] == ["ERR-CLIENT"]


def test_log_error_without_id_is_400(client):
    assert client.post("/api/log-error", json={"type": "UI_ERROR"}).status_code == 400


# -----------------------
# submit-assessment / test
# -----------------------

def test_submit_assessment_scores_and_stores(client):
    resp = client.post(
        "/api/submit-assessment",
        json={"sessionId": "session-1", "userProfile": SAMPLE_PROFILE, "answers": _answers(4)},
    )

    assert resp.status_code == 200
    body = resp.json()
    assert body["data"]["tier"]["name"] == "Managed"
    assert body["data"]["scores"]["overall"] == 4.0
    assert client.get("/api/get-results", params={"id": body["resultId"]}).status_code == 200


def test_submit_assessment_in_flight_is_409(client, app):
    app.state.service.submission_guard.acquire("session-1")

    resp = client.post(
        "/api/submit-assessment",
        json={"sessionId": "session-1", "userProfile": SAMPLE_PROFILE, "answers": _answers(4)},
    )

    assert resp.status_code == 409
    assert resp.json()["retryable"] is False


def test_questions_endpoint_lists_questionnaire(client):
    body = client.get("/api/questions").json()

    assert len(body["dimensions"]) == 8
    assert all(len(d["questions"]) == 3 for d in body["dimensions"])
    assert [s["value"] for s in body["scale"]] == [1, 2, 3, 4, 5]


def test_health_check(client):
    body = client.get("/api/test").json()

    assert body["success"] is True
    assert body["method"] == "GET"
    assert body["hasOpenAIKey"] is True


# -----------------------
# request gate housekeeping
# -----------------------

class FakeClock:
    def __init__(self, now=1000.0):
        self.now = now

    def __call__(self):
        return self.now


def test_stale_clients_leave_the_gate(settings, session_factory, stub_client):
    clock = FakeClock()
    gate = RequestGate(max_requests=5, window_seconds=60, clock=clock, sweep_every=5)
    app = create_app(settings, session_factory=session_factory, analysis_client=stub_client, request_gate=gate)

    with TestClient(app) as test_client:
        for i in range(4):
            test_client.post("/api/generate-analysis", json={}, headers={"X-Forwarded-For": f"203.0.113.{i}"})
        assert gate.tracked_clients() == 4

        clock.now += 61
        test_client.post("/api/generate-analysis", json={}, headers={"X-Forwarded-For": "198.51.100.9"})

    assert gate.tracked_clients() == 1


def test_unparseable_bodies_do_not_use_quota(client):
    headers = {"X-Forwarded-For": "203.0.113.50", "Content-Type": "application/json"}
    for _ in range(6):
        assert client.post("/api/generate-analysis", content="not json", headers=headers).status_code == 400

    assert client.post("/api/generate-analysis", json=ANALYSIS_BODY, headers=headers).status_code == 200


def test_infinite_answer_is_scored_not_rejected(client):
    # 1e999 is valid JSON that decodes to float("inf")
    answers = ", ".join(f'"{key}": 4' for key in _answers(4) if key != "strategy_1")
    body = (
        '{"sessionId": "session-inf", "userProfile": {"companyName": "Acme"}, '
        '"answers": {"strategy_1": 1e999, ' + answers + "}}"
    )

    resp = client.post("/api/submit-assessment", content=body, headers={"Content-Type": "application/json"})

    assert resp.status_code == 200
    assert resp.json()["data"]["scores"]["dimensions"]["strategy"] == 3.0


def test_log_error_does_not_overwrite_existing_record(client, session_factory):
    client.post("/api/log-error", json={"id": "ERR-SAME01", "error": "original"})
    resp = client.post("/api/log-error", json={"id": "ERR-SAME01", "error": "replacement"})

    assert resp.status_code == 200
    rows = _error_rows(session_factory)
    assert [row.payload["error"] for row in rows] == ["original"]
