import logging
import sys
import time
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from newsdesk.config import get_settings
from newsdesk.dependencies import get_highlight_editor
from newsdesk.routers import filters, highlights, news, scraper

settings = get_settings()

logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s [%(levelname)s] %(name)s - %(message)s",
    handlers=[logging.StreamHandler(sys.stdout)],
)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info(f"Starting Research News API (db: {settings.db_path})")
    yield
    # Write any highlight edits still waiting on their debounce timer
    editor = app.dependency_overrides.get(get_highlight_editor, get_highlight_editor)()
    await editor.flush()
    logger.info("Research News API stopped")


app = FastAPI(title="Research News API", version="1.0.0", lifespan=lifespan)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    started = time.perf_counter()
    label = f"{request.method} {request.url.path}"
    logger.info(f">>> {label}")

    try:
        response = await call_next(request)
    except Exception as e:
        logger.error(
            f"!!! {label} failed after {time.perf_counter() - started:.3f}s: {e}",
            exc_info=True,
        )
        return JSONResponse(
            status_code=500, content={"detail": f"Internal server error: {str(e)}"}
        )

    logger.info(
        f"<<< {label} - {response.status_code} in {time.perf_counter() - started:.3f}s"
    )
    return response


app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.get("/")
async def read_root():
    logger.info("Root endpoint accessed")
    return {"message": "Research News API", "status": "running"}


@app.get("/health")
async def health_check():
    return {"status": "healthy"}


# Include routers
app.include_router(news.router)
app.include_router(highlights.router)
app.include_router(filters.router)
app.include_router(scraper.router)

if __name__ == "__main__":
    import uvicorn

    uvicorn.run("main:app", host="0.0.0.0", port=8000, reload=True)
