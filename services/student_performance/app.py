import json
import logging
import os
from typing import Any, Optional

from fastapi import FastAPI
from pydantic import BaseModel, Field

from services.shared.ai_gateway import AI_GATEWAY_URL, DEFAULT_MODEL, AIGatewayClient, AIGatewayError
from services.shared.cors import json_response, preflight_response

LOVABLE_API_KEY = os.getenv("LOVABLE_API_KEY", "")
GATEWAY_URL = os.getenv("AI_GATEWAY_URL", AI_GATEWAY_URL)
MODEL = os.getenv("AI_MODEL", DEFAULT_MODEL)

PRESENT = "PRESENT"
HIGH_RISK_BELOW = 75
MEDIUM_RISK_BELOW = 85
RECENT_TREND_LENGTH = 10

SYSTEM_PROMPT = (
    "You are an educational analytics AI that predicts student performance and "
    "provides actionable insights. Always respond with valid JSON only."
)

GATEWAY_ERRORS = {
    429: "Rate limit exceeded. Please try again later.",
    402: "AI credits exhausted. Please add credits to continue.",
}

app = FastAPI(title="Student Performance Prediction", version="1.0.0")
logger = logging.getLogger("student-performance")


class StudentData(BaseModel):
    name: str
    course: Optional[str] = None
    year: Optional[int | str] = None
    section: Optional[str] = None


class AttendanceEntry(BaseModel):
    status: str
    date: Optional[str] = None

    model_config = {"extra": "allow"}


class PredictionRequest(BaseModel):
    student_data: StudentData = Field(alias="studentData")
    attendance_data: list[AttendanceEntry] = Field(default_factory=list, alias="attendanceData")

    model_config = {"populate_by_name": True}


def attendance_percentage(records: list[AttendanceEntry]) -> float:
    if not records:
        return 0.0
    present = sum(1 for r in records if r.status == PRESENT)
    return present / len(records) * 100


def risk_level(percentage: float) -> str:
    if percentage < HIGH_RISK_BELOW:
        return "HIGH"
    if percentage < MEDIUM_RISK_BELOW:
        return "MEDIUM"
    return "LOW"


def build_context(payload: PredictionRequest, percentage: float) -> str:
    student = payload.student_data
    records = payload.attendance_data
    present = sum(1 for r in records if r.status == PRESENT)
    trend = ", ".join(r.status for r in records[:RECENT_TREND_LENGTH])
    return f"""
Student Profile:
- Name: {student.name}
- Course: {student.course}
- Year: {student.year}
- Section: {student.section}

Attendance Data:
- Total Classes: {len(records)}
- Present: {present}
- Attendance Percentage: {percentage:.2f}%
- Recent Trend: {trend}

Analyze this student's performance and provide:
1. Risk Level (LOW/MEDIUM/HIGH)
2. Key Issues identified
3. Specific actionable recommendations
4. Mentor feedback message
5. Predicted outcome if current trend continues

Format as JSON with keys: riskLevel, issues, recommendations, mentorFeedback, prediction
"""


def parse_analysis(reply: str, percentage: float) -> dict[str, Any]:
    """Decode the model's JSON, or fall back to an attendance-only analysis."""
    text = reply.strip()
    if text.startswith("```"):
        text = text.strip("`").removeprefix("json").strip()
    try:
        analysis = json.loads(text)
    except ValueError:
        analysis = None
    if isinstance(analysis, dict):
        return analysis

    logger.warning("Model reply was not a JSON object, using attendance fallback")
    return {
        "riskLevel": risk_level(percentage),
        "issues": [f"Low attendance: {percentage:.2f}%"],
        "recommendations": ["Improve attendance", "Meet with faculty advisor"],
        "mentorFeedback": reply,
        "prediction": "Needs improvement",
    }


def create_gateway() -> AIGatewayClient:
    return AIGatewayClient(LOVABLE_API_KEY, url=GATEWAY_URL, model=MODEL)


def get_gateway() -> AIGatewayClient:
    if not LOVABLE_API_KEY:
        raise RuntimeError("LOVABLE_API_KEY is not configured")
    if not hasattr(app.state, "gateway"):
        app.state.gateway = create_gateway()
    return app.state.gateway


@app.on_event("shutdown")
async def shutdown_event():
    gateway = getattr(app.state, "gateway", None)
    if gateway:
        await gateway.aclose()


@app.get("/health")
def health():
    return {"status": "ok", "service": "student-performance"}


@app.options("/")
def preflight():
    return preflight_response()


@app.post("/")
async def predict_performance(payload: PredictionRequest):
    percentage = attendance_percentage(payload.attendance_data)
    messages = [
        {"role": "system", "content": SYSTEM_PROMPT},
        {"role": "user", "content": build_context(payload, percentage)},
    ]
    try:
        reply = await get_gateway().complete(messages)
    except AIGatewayError as exc:
        if exc.status_code in GATEWAY_ERRORS:
            return json_response({"error": GATEWAY_ERRORS[exc.status_code]}, status_code=exc.status_code)
        logger.exception("AI Gateway Error")
        return json_response({"error": "AI prediction failed"}, status_code=500)
    except Exception as exc:
        logger.exception("Error in predict-student-performance")
        return json_response({"error": str(exc)}, status_code=500)

    if reply is None:
        return json_response({"error": "AI prediction failed"}, status_code=500)

    analysis = parse_analysis(reply, percentage)
    return json_response({"success": True, "attendancePercentage": f"{percentage:.2f}", **analysis})
