# main.py
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager
from loguru import logger

from app.core.config import settings
from app.core.database import engine, Base # Ensure Base is imported
from app import models  # noqa: F401  registers every table on Base.metadata
from app.api.routes import trades, capital, tags

@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    logger.info("--- APP STARTUP SEQUENCE INITIATED ---")
    logger.debug(f"DATABASE_URL detected: {settings.database_url}")

    try:
        Base.metadata.create_all(bind=engine)
        logger.info("Database tables ready")
    except Exception as e:
        logger.error(f"Failed to create database tables during startup: {e}")
        raise

    logger.info("--- APP STARTUP SEQUENCE COMPLETED ---")
    yield

    # Shutdown
    logger.info("--- APP SHUTDOWN SEQUENCE INITIATED ---")
    engine.dispose()
    logger.info("--- APP SHUTDOWN SEQUENCE COMPLETED ---")

app = FastAPI(
    title=settings.app_name,
    description="Trading journal with P&L, charges and capital pool accounting",
    version="1.0.0",
    lifespan=lifespan
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"]
)

# Include routers
app.include_router(trades.router, prefix="/api/trades", tags=["Trades"])
app.include_router(tags.router, prefix="/api/tags", tags=["Tags"])
app.include_router(capital.router, prefix="/api/capital", tags=["Capital"])

@app.get("/")
async def root():
    return {"message": "Welcome to the Trading Journal API"}

@app.get("/health")
async def health_check():
    return {"status": "healthy", "features": ["trades", "charges", "capital-pools"]}
