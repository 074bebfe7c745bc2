from contextlib import asynccontextmanager
import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from temporalio.client import Client

from config import API_HOST, API_PORT, TEMPORAL_ADDRESS
from database import session_scope
from routers import content, lobstr, workflows
from services.background import drain_background_tasks

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    yield
    # Token usage rows and backlink optimization run detached from requests
    logger.info("Waiting for background tasks before shutdown")
    await drain_background_tasks()


app = FastAPI(title="Sparti Content Service", version="1.0.0", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(content.router, tags=["content"])
app.include_router(lobstr.router, tags=["lobstr"])
app.include_router(workflows.router, tags=["workflows"])


@app.get("/")
async def root():
    return {
        "service": "Sparti Content Service",
        "version": "1.0.0",
        "temporal_address": TEMPORAL_ADDRESS
    }


@app.get("/health")
async def health():
    """
    Report whether the database and Temporal are reachable
    """
    checks = {}
    try:
        with session_scope() as db:
            db.execute(text("SELECT 1"))
        checks["database"] = "connected"
    except SQLAlchemyError as e:
        logger.warning(f"[Health] Database check failed: {str(e)}")
        checks["database"] = f"error: {str(e)}"

    try:
        await Client.connect(TEMPORAL_ADDRESS)
        checks["temporal"] = "connected"
    except Exception as e:
        logger.warning(f"[Health] Temporal check failed: {str(e)}")
        checks["temporal"] = f"error: {str(e)}"

    healthy = all(value == "connected" for value in checks.values())
    return JSONResponse(
        status_code=200 if healthy else 503,
        content={"status": "healthy" if healthy else "unhealthy", **checks},
    )


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host=API_HOST, port=API_PORT)
