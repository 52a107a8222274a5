import logging
from functools import lru_cache
from typing import List, Literal

from fastapi import Depends, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, StreamingResponse
from pydantic import BaseModel, Field

from compy_agent import CompyChatAgent, RateLimiter, build_rate_limiter, client_identity
from compy_agent.config import ALLOWED_ORIGINS, LOG_LEVEL
from compy_agent.errors import AdmissionDenied, RateLimiterUnavailable
from compy_agent.models import AdmissionResult
from compy_agent.streaming import DATA_STREAM_HEADERS, encode_stream

logging.basicConfig(
    level=LOG_LEVEL,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(title="Compy Shopping Assistant")

app.add_middleware(
    CORSMiddleware,
    allow_origins=ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization", "X-Requested-With"],
    max_age=86400,
)


class ChatMessage(BaseModel):
    role: Literal["user", "assistant", "system", "tool"]
    content: str = ""


class ChatRequest(BaseModel):
    messages: List[ChatMessage] = Field(..., min_length=1)


# Shared per process; each request gets its own loop state inside stream_reply.
@lru_cache(maxsize=1)
def get_agent() -> CompyChatAgent:
    return CompyChatAgent()


@lru_cache(maxsize=1)
def get_rate_limiter() -> RateLimiter:
    return build_rate_limiter()


def request_identity(request: Request) -> str:
    # First X-Forwarded-For hop when behind a proxy; both headers are caller-controlled.
    forwarded = request.headers.get("x-forwarded-for", "")
    host = forwarded.split(",")[0].strip() or (request.client.host if request.client else None)
    return client_identity(host, request.headers.get("user-agent"))


def rate_limit_headers(admission: AdmissionResult) -> dict:
    return {
        "X-RateLimit-Limit": str(admission.limit),
        "X-RateLimit-Remaining": str(admission.remaining),
        "X-RateLimit-Reset": str(int(admission.reset_at)),
    }


@app.exception_handler(AdmissionDenied)
async def admission_denied_handler(request: Request, exc: AdmissionDenied):
    admission = exc.admission
    return JSONResponse(
        {
            "error": "Too many requests",
            "limit": admission.limit,
            "remaining": 0,
            "reset": admission.reset_at,
        },
        status_code=429,
        headers={**rate_limit_headers(admission), "Retry-After": str(exc.retry_after)},
    )


@app.exception_handler(RateLimiterUnavailable)
async def limiter_unavailable_handler(request: Request, exc: RateLimiterUnavailable):
    logger.error("Rejecting request, rate limiter unavailable: %s", exc)
    return JSONResponse({"error": "Service temporarily unavailable"}, status_code=503)


async def enforce_rate_limit(
    request: Request,
    limiter: RateLimiter = Depends(get_rate_limiter),
) -> AdmissionResult:
    """Admit the caller or raise AdmissionDenied before any conversation work starts."""
    admission = await limiter.admit(request_identity(request))
    if not admission.allowed:
        retry_after = max(1, int(admission.reset_at - limiter.now()) + 1)
        raise AdmissionDenied(admission, retry_after=retry_after)
    return admission


@app.post("/api/chat")
async def chat_endpoint(
    body: ChatRequest,
    admission: AdmissionResult = Depends(enforce_rate_limit),
    agent: CompyChatAgent = Depends(get_agent),
):
    messages = [m.model_dump() for m in body.messages]
    return StreamingResponse(
        encode_stream(agent.stream_reply(messages)),
        media_type="text/plain; charset=utf-8",
        headers={**rate_limit_headers(admission), **DATA_STREAM_HEADERS},
    )


@app.get("/")
async def root():
    return {"status": "Compy Assistant API is running", "docs": "/docs"}


@app.get("/health")
async def health_check():
    return {"status": "ok"}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
