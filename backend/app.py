import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from backend import config
from backend.routers import export

logging.basicConfig(level=config.LOG_LEVEL,
                    format="%(asctime)s - %(levelname)s - %(message)s")

app = FastAPI(
    title="terrainstl API",
    description="Exports elevation tiles for a bounding box as a printable STL",
    version="0.1.0",
)

# ---------------------------------------------------------------------------
# CORS
# ---------------------------------------------------------------------------
app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# ---------------------------------------------------------------------------
# Routers
# ---------------------------------------------------------------------------
app.include_router(export.router)


@app.get("/")
async def root():
    return {"status": "ok", "service": "terrainstl API"}
