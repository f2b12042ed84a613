"""
Main FastAPI Application for Job Cost Forecasting.
Serves the v1 REST endpoints for cost-to-complete, earned value and progress reports.
"""
import logging

from fastapi import FastAPI

from jobcost import __version__
from jobcost.config import get_config
from jobcost.models import init_db
from jobcost.api.v1 import api_router as v1_router

config = get_config()
logging.basicConfig(level=config.log_level, format=config.log_format)
logger = logging.getLogger(__name__)


# Initialize FastAPI app
app = FastAPI(
    title="Job Cost Forecasting",
    description="Earned value and cost-to-complete forecasting for construction jobs",
    version=__version__,
)

app.include_router(v1_router)


# Initialize database on startup
@app.on_event("startup")
async def startup_event():
    init_db()
    logger.info(f"Job cost forecasting API started (config {config.version})")


@app.get("/health", tags=["System"])
def health():
    return {"status": "ok", "version": __version__}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
