from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from .database import engine, Base
from .routers import modules, mfe
from .config import get_settings
import logging

settings = get_settings()

logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

app = FastAPI(title="Smarthome Management API")

# Touchscreen shell + MFE dev servers
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origin_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    logger.info(f"Incoming request: {request.method} {request.url.path}")
    try:
        response = await call_next(request)
        logger.info(f"Response status: {response.status_code}")
        return response
    except Exception as e:
        logger.error(f"Request failed: {str(e)}")
        raise


# Create tables, then import modules from the pre-database JSON file
@app.on_event("startup")
async def startup():
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database tables created successfully")

    from .services.module_registry import get_module_registry
    await get_module_registry().ensure_migrated(settings.legacy_modules_file)


app.include_router(modules.router)
app.include_router(mfe.router)


@app.get("/health")
async def health_check():
    return {"status": "healthy"}


def run():
    """Entry point for the smarthome-api console script."""
    import uvicorn

    uvicorn.run("smarthome_api.main:app", host="0.0.0.0", port=5000, log_level=settings.log_level.lower())
