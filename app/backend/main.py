import os
from typing import Any

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.backend.routers import files, submit
from app.database.db import init_db

structlog.configure(processors=[structlog.processors.TimeStamper(fmt="iso"), structlog.processors.JSONRenderer()])
log = structlog.get_logger()

app = FastAPI(title="Submission Intake Service", version="1.0.0")

allowed_origins = [
    "http://localhost:8000",
    "http://127.0.0.1:8000",
    os.getenv("FRONTEND_ORIGIN", "http://localhost:8000"),
]

app.add_middleware(
    CORSMiddleware,
    allow_origins=allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.on_event("startup")
def on_startup() -> None:
    init_db()
    log.info("startup_complete")


@app.get("/health")
def healthcheck() -> dict[str, Any]:
    return {"status": "ok"}


app.include_router(submit.router)
app.include_router(files.router)
