import json

import httpx
import pytest
from fastapi.testclient import TestClient

from services.shared.ai_gateway import AIGatewayClient
from tests.utils import reload_module

STUDENT = {"name": "Meera Shah", "course": "B.E. IT", "year": 3, "section": "A"}


def performance_module(monkeypatch, handler):
    monkeypatch.setenv("LOVABLE_API_KEY", "lovable-key")
    module = reload_module("services.student_performance.app")
    monkeypatch.setattr(
        module,
        "create_gateway",
        lambda: AIGatewayClient("lovable-key", transport=httpx.MockTransport(handler)),
    )
    return module


def reply_with(text):
    return httpx.Response(200, json={"choices": [{"message": {"content": text}}]})


def attendance(present: int, absent: int) -> list[dict]:
    return [{"status": "PRESENT"}] * present + [{"status": "ABSENT"}] * absent


def test_model_json_is_merged_into_response(monkeypatch):
    prompts = []
    analysis = {
        "riskLevel": "LOW",
        "issues": [],
        "recommendations": ["Keep it up"],
        "mentorFeedback": "Great consistency.",
        "prediction": "Distinction",
    }

    def handler(request: httpx.Request) -> httpx.Response:
        prompts.append(json.loads(request.content)["messages"][1]["content"])
        return reply_with(json.dumps(analysis))

    module = performance_module(monkeypatch, handler)
    with TestClient(module.app) as client:
        response = client.post("/", json={"studentData": STUDENT, "attendanceData": attendance(9, 1)})

    assert response.status_code == 200
    assert response.json() == {"success": True, "attendancePercentage": "90.00", **analysis}
    assert "- Attendance Percentage: 90.00%" in prompts[0]
    assert "- Total Classes: 10" in prompts[0]


def test_fenced_json_is_accepted(monkeypatch):
    fenced = '```json\n{"riskLevel": "MEDIUM", "prediction": "Pass"}\n```'
    module = performance_module(monkeypatch, lambda request: reply_with(fenced))
    with TestClient(module.app) as client:
        response = client.post("/", json={"studentData": STUDENT, "attendanceData": attendance(8, 2)})

    assert response.json()["riskLevel"] == "MEDIUM"
    assert response.json()["prediction"] == "Pass"


@pytest.mark.parametrize(
    "present, absent, expected",
    [(7, 3, "HIGH"), (8, 2, "MEDIUM"), (17, 3, "LOW")],
)
def test_plain_text_reply_falls_back_to_attendance_risk(monkeypatch, present, absent, expected):
    module = performance_module(monkeypatch, lambda request: reply_with("Student is doing okay."))
    with TestClient(module.app) as client:
        response = client.post(
            "/", json={"studentData": STUDENT, "attendanceData": attendance(present, absent)}
        )

    body = response.json()
    assert response.status_code == 200
    assert body["riskLevel"] == expected
    assert body["mentorFeedback"] == "Student is doing okay."
    assert body["prediction"] == "Needs improvement"


def test_no_classes_counts_as_zero_percent(monkeypatch):
    module = performance_module(monkeypatch, lambda request: reply_with("not json"))
    with TestClient(module.app) as client:
        response = client.post("/", json={"studentData": STUDENT, "attendanceData": []})

    body = response.json()
    assert body["attendancePercentage"] == "0.00"
    assert body["riskLevel"] == "HIGH"
    assert body["issues"] == ["Low attendance: 0.00%"]


@pytest.mark.parametrize(
    "status, code, message",
    [
        (429, 429, "Rate limit exceeded. Please try again later."),
        (402, 402, "AI credits exhausted. Please add credits to continue."),
        (503, 500, "AI prediction failed"),
    ],
)
def test_gateway_errors(monkeypatch, status, code, message):
    module = performance_module(monkeypatch, lambda request: httpx.Response(status, text="upstream"))
    with TestClient(module.app) as client:
        response = client.post("/", json={"studentData": STUDENT, "attendanceData": attendance(1, 0)})

    assert response.status_code == code
    assert response.json() == {"error": message}


def test_missing_api_key(monkeypatch):
    monkeypatch.delenv("LOVABLE_API_KEY", raising=False)
    module = reload_module("services.student_performance.app")
    with TestClient(module.app) as client:
        response = client.post("/", json={"studentData": STUDENT, "attendanceData": []})

    assert response.status_code == 500
    assert response.json() == {"error": "LOVABLE_API_KEY is not configured"}
