import logging

from fastapi import FastAPI

from backchannel import __version__
from backchannel.api.feedback import router as feedback_router
from backchannel.core.dependencies import get_catalog, get_config, seed_file_path
from backchannel.services.seeding import load_stores_from_definitions

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


app = FastAPI(
    title="BackChannel feedback store",
    version=__version__,
    description="Locally stored feedback packages, resolved by page URL.",
)


@app.on_event("startup")
async def startup_event() -> None:
    """
    Apply the configured log level and load seed store definitions, if any.
    """
    config = get_config()
    logging.getLogger().setLevel(config.log_level.upper())

    catalog = get_catalog()
    if not catalog.is_supported():
        logger.warning("Persistence engine not available; all packages will resolve as inactive")
        return

    seed_path = seed_file_path()
    if seed_path is not None:
        if seed_path.is_file():
            store_ids = await load_stores_from_definitions(catalog, seed_path)
            logger.info(f"Loaded {len(store_ids)} store(s) from {seed_path}")
        else:
            logger.warning(f"Seed file {seed_path} not found")


@app.get("/health")
async def health() -> dict:
    """
    Lightweight health check endpoint.
    """
    return {"status": "ok"}


app.include_router(feedback_router, prefix="/api", tags=["feedback"])


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "backchannel.main:app",
        host="127.0.0.1",
        port=8000,
        reload=True,
    )
