# backend/main.py
import logging
import os

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

# --- Feature routers ---
from features.term_drill import config as term_drill_config
from features.term_drill.router import router as term_drill_router

logging.basicConfig(format=term_drill_config.LOG_FORMAT, level=term_drill_config.LOG_LEVEL)

app = FastAPI(
    title="Term Drill Backend API",
    description="Snake and Whack-a-Term vocabulary drills over the study app's materials.",
    version="1.0.0",
)

# --- CORS ---
origins = [
    "http://localhost:8787",
]
if os.getenv("ALLOWED_ORIGINS"):
    additional_origins = [origin.strip() for origin in os.getenv("ALLOWED_ORIGINS").split(",")]
    origins.extend(additional_origins)

app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "DELETE", "OPTIONS"],
    allow_headers=["*"],
)

# --- Router registration (every feature lives under /api) ---
app.include_router(term_drill_router, prefix="/api")
logging.info("Loaded feature: term_drill")


# --- Platform endpoints ---
@app.get("/", include_in_schema=False)
def read_root():
    return {"message": "Welcome to the Term Drill Backend API. See /docs for documentation."}
