"""FastAPI application for strategy code generation."""

import logging
import os
from contextlib import asynccontextmanager
from pathlib import Path

from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from src.routes import strategy

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

# Load environment variables
env_path = Path(__file__).parent.parent / ".env"
if env_path.exists():
    load_dotenv(env_path)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan context manager for startup/shutdown events."""
    # Startup
    logger.info("Starting Strategy Codegen Service...")
    logger.info(f"Server running on port {os.getenv('PORT', '8080')}")
    logger.info(f"CODEGEN_MAX_CONFIG_BYTES: {os.getenv('CODEGEN_MAX_CONFIG_BYTES', '1048576')}")
    logger.info(f"CODEGEN_MAX_CONFIG_DEPTH: {os.getenv('CODEGEN_MAX_CONFIG_DEPTH', '64')}")
    logger.info("Ready for requests")
    yield
    # Shutdown
    logger.info("Shutting down Strategy Codegen Service...")


# Create FastAPI app
app = FastAPI(
    title="Strategy Codegen",
    description="UI builder config to Freqtrade strategy code generation",
    version="0.1.0",
    lifespan=lifespan,
)

# Configure CORS
cors_origins = os.getenv("CORS_ORIGINS", "*").split(",")
app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Register routers
app.include_router(strategy.router)


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy"}


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=int(os.getenv("PORT", "8080")))
