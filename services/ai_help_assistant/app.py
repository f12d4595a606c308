import logging
import os
from pathlib import Path
from typing import Literal

from fastapi import FastAPI
from pydantic import BaseModel, Field

from services.shared.ai_gateway import AI_GATEWAY_URL, DEFAULT_MODEL, AIGatewayClient, AIGatewayError
from services.shared.cors import json_response, preflight_response

LOVABLE_API_KEY = os.getenv("LOVABLE_API_KEY", "")
GATEWAY_URL = os.getenv("AI_GATEWAY_URL", AI_GATEWAY_URL)
MODEL = os.getenv("AI_MODEL", DEFAULT_MODEL)
MAX_TOKENS = 1024

SYSTEM_PROMPT = (Path(__file__).parent / "system_prompt.md").read_text(encoding="utf-8").strip()
FALLBACK_REPLY = "I'm sorry, I couldn't process your question. Please try again."

# Gateway statuses the caller can act on, surfaced with their own status code
GATEWAY_ERRORS = {
    429: "Too many requests. Please wait a moment and try again.",
    402: "Service temporarily unavailable. Please try again later.",
}

app = FastAPI(title="AI Help Assistant", version="1.0.0")
logger = logging.getLogger("ai-help-assistant")


class ChatMessage(BaseModel):
    role: Literal["user", "assistant"]
    content: str


class HelpRequest(BaseModel):
    message: str
    conversation_history: list[ChatMessage] = Field(default_factory=list, alias="conversationHistory")

    model_config = {"populate_by_name": True}


def build_messages(payload: HelpRequest) -> list[dict[str, str]]:
    return [
        {"role": "system", "content": SYSTEM_PROMPT},
        *(m.model_dump() for m in payload.conversation_history),
        {"role": "user", "content": payload.message},
    ]


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
    return {"status": "ok", "service": "ai-help-assistant"}


@app.options("/")
def preflight():
    return preflight_response()


@app.post("/")
async def ask_assistant(payload: HelpRequest):
    try:
        reply = await get_gateway().complete(build_messages(payload), max_tokens=MAX_TOKENS)
    except AIGatewayError as exc:
        if exc.status_code in GATEWAY_ERRORS:
            return json_response({"error": GATEWAY_ERRORS[exc.status_code]}, status_code=exc.status_code)
        logger.exception("AI gateway error")
        return json_response({"error": "Failed to get AI response"}, status_code=500)
    except Exception as exc:
        logger.exception("AI Help Assistant error")
        return json_response({"error": str(exc)}, status_code=500)
    return json_response({"response": reply or FALLBACK_REPLY})
