import copy

import pytest
from fastapi.testclient import TestClient

from assessment.connection import create_session_factory, get_db_engine
from assessment.entities import Base
from assessment.llm_client import MODE_TOOL_CALL, RawModelOutput
from assessment.request_gate import RequestGate
from assessment.settings import Settings
from server import create_app

SAMPLE_ANALYSIS = {
    "summary": "The organization is at a developing stage with pockets of strong practice.",
    "peerComparison": "Slightly ahead of retail peers on governance, behind on analytics.",
    "swot": {
        "strengths": ["Executive sponsorship", "Documented data policies"],
        "weaknesses": ["Fragmented reporting"],
        "opportunities": ["Cloud data platform"],
        "threats": ["Regulatory exposure"],
    },
    "recommendations": [
        {"title": "Form a governance council", "content": "Assign owners for the top ten datasets."},
    ],
    "nextSteps": [
        {"title": "Phase 1 (0-3 months)", "content": "Inventory critical data assets."},
    ],
}

SAMPLE_PROFILE = {
    "fullName": "Jordan Lee",
    "jobTitle": "Head of Data",
    "companyName": "Acme Retail",
    "companySize": "201-1000",
    "industry": "Retail",
}


class StubAnalysisClient:
    """
    Stands in for AnalysisClient: hands back queued outputs or raises `error`.
    """

    def __init__(self, outputs=None, error=None):
        self.outputs = list(outputs or [RawModelOutput(mode=MODE_TOOL_CALL, text="", payload=copy.deepcopy(SAMPLE_ANALYSIS))])
        self.error = error
        self.calls = []

    def request_analysis(self, prompt):
        self.calls.append(prompt)
        if self.error is not None:
            raise self.error
        if len(self.outputs) > 1:
            return self.outputs.pop(0)
        return self.outputs[0]


@pytest.fixture
def session_factory():
    engine = get_db_engine("sqlite://")
    Base.metadata.create_all(engine)
    yield create_session_factory(engine)
    engine.dispose()


@pytest.fixture
def stub_client():
    return StubAnalysisClient()


@pytest.fixture
def settings():
    return Settings(openai_api_key="test-key", public_base_url="https://assessment.example.com")


@pytest.fixture
def app(settings, session_factory, stub_client):
    return create_app(
        settings,
        session_factory=session_factory,
        analysis_client=stub_client,
        request_gate=RequestGate(max_requests=5, window_seconds=900),
    )


@pytest.fixture
def client(app):
    with TestClient(app) as test_client:
        yield test_client
