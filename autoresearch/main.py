"""FastAPI main application module."""

import time
from pathlib import Path

from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.responses import FileResponse, JSONResponse
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from slowapi.util import get_remote_address

from .config import get_settings
from .deps import get_llm_client, get_rate_limiter, get_research_engine, get_session_store
from .errors import (
    AutoResearchError, ConfigurationError, ProviderError, ResearchTimeoutError, SearchError,
    SessionBusyError,
)
from .llm_client import check_llm_connectivity
from .models import ResearchRequest, ResearchResponse
from .sessions import run_with_progress_pings
from .utils import log_structured

settings = get_settings()

app = FastAPI(title="AutoResearch", description="Automated multi-source research reports")

# Rate limiting
limiter = get_rate_limiter()
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
app.add_middleware(SlowAPIMiddleware)

ERROR_STATUS = [
    (SessionBusyError, 409),
    (SearchError, 502),
    (ConfigurationError, 503),
    (ProviderError, 503),
    (ResearchTimeoutError, 504),
]


@app.exception_handler(AutoResearchError)
async def research_error_handler(request: Request, exc: AutoResearchError):
    status_code = next((code for cls, code in ERROR_STATUS if isinstance(exc, cls)), 500)
    log_structured("request_failed", {
        "path": request.url.path,
        "status_code": status_code,
        "error_type": type(exc).__name__,
        "error": str(exc)
    })
    return JSONResponse(
        status_code=status_code,
        content={"detail": str(exc), "error_type": type(exc).__name__}
    )


@app.get("/health")
async def health():
    return {"status": "ok"}


@app.get("/llm/health")
async def llm_health(llm_client=Depends(get_llm_client)):
    """Check LLM provider connectivity."""
    return await check_llm_connectivity(llm_client)


@app.post("/research", response_model=ResearchResponse)
@limiter.limit(f"{settings.rate_limit_per_minute}/minute")
async def research(
    request: Request,
    body: ResearchRequest,
    engine=Depends(get_research_engine),
    sessions=Depends(get_session_store)
):
    """Run the research pipeline and return the generated files."""

    if not body.topic.strip():
        raise HTTPException(status_code=400, detail="Topic cannot be empty")

    topic = body.to_topic()
    log_structured("research_request", {
        "user_id": body.user_id,
        "topic": topic.topic,
        "depth": topic.depth.value,
        "ip": get_remote_address(request)
    })

    sessions.begin(body.user_id, topic.topic)
    started = time.time()

    def on_progress(stage: str, detail: str) -> None:
        log_structured("research_progress", {"user_id": body.user_id, "stage": stage, "detail": detail})

    def on_ping(count: int) -> None:
        log_structured("research_still_running", {
            "user_id": body.user_id,
            "topic": topic.topic,
            "elapsed_seconds": round(time.time() - started, 1),
            "ping": count
        })

    try:
        files = await run_with_progress_pings(
            engine.research_with_timeout(topic, progress_callback=on_progress),
            on_ping,
            interval=settings.progress_ping_interval
        )
    except BaseException:
        sessions.finish(body.user_id, success=False)
        raise

    sessions.finish(body.user_id, success=True)

    return ResearchResponse(
        topic=topic.topic,
        files=files,
        downloads=[f"/reports/{Path(path).name}" for path in files],
        elapsed_seconds=round(time.time() - started, 2)
    )


@app.get("/history/{user_id}")
async def history(user_id: str, sessions=Depends(get_session_store)):
    return {"user_id": user_id, "topics": sessions.history(user_id)}


@app.get("/reports/{filename}")
async def download_report(filename: str):
    """Download a generated report file."""

    output_dir = Path(settings.output_dir).resolve()
    path = (output_dir / filename).resolve()

    if path.parent != output_dir or not path.is_file():
        raise HTTPException(status_code=404, detail="Report not found")

    media_type = "application/pdf" if path.suffix == ".pdf" else "text/markdown"
    return FileResponse(path, media_type=media_type, filename=path.name)


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
