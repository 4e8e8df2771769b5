# api/app/main.py
import os
import logging
from datetime import timedelta
from typing import List
from dotenv import load_dotenv
from fastapi import Depends, FastAPI, Header, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware

from storage import StorageError
from storage.db import init_db_pool, close_db_pool, get_dsn
from storage.postgres import PostgresStore
from storage.schema import ensure_schema
from storage.series import SeriesReader
from .schemas import Health, MetricPoint

load_dotenv()

API_TOKEN = os.getenv("API_TOKEN", "devtoken123")
FRONTEND_URL = os.getenv("FRONTEND_URL", "http://localhost:5173")
LOOKBACK = timedelta(hours=float(os.getenv("METRICS_LOOKBACK_HOURS", "3")))
SCHEMA_ATTEMPTS = int(os.getenv("SCHEMA_ATTEMPTS", "5"))
SCHEMA_RETRY_DELAY = float(os.getenv("SCHEMA_RETRY_DELAY_SECONDS", "5"))

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

logging.basicConfig(
    level=LOG_LEVEL.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(title="DB Monitor API")
app.add_middleware(
    CORSMiddleware,
    allow_origins=[FRONTEND_URL],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

@app.on_event("startup")
async def startup():
    await ensure_schema(get_dsn(), attempts=SCHEMA_ATTEMPTS, delay=SCHEMA_RETRY_DELAY)
    pool = await init_db_pool()
    app.state.store = PostgresStore(pool)

@app.on_event("shutdown")
async def shutdown():
    await close_db_pool()

def check_auth(authorization: str):
    if not authorization:
        return False
    expected = f"Bearer {API_TOKEN}"
    return authorization == expected

def current_owner(authorization: str = Header(None), x_owner_id: str = Header(None)) -> str:
    # session handling lives in front of this service; it forwards the owner identity
    if not check_auth(authorization) or not x_owner_id:
        raise HTTPException(status_code=401, detail="unauthorized")
    return x_owner_id

def get_store(request: Request):
    return request.app.state.store

@app.get("/api/metrics", response_model=List[MetricPoint])
async def metrics(owner_id: str = Depends(current_owner), store=Depends(get_store)):
    reader = SeriesReader(store)
    try:
        points = await reader.query(owner_id, LOOKBACK)
    except StorageError as e:
        # the dashboard shows gaps rather than an error
        logger.error("metrics read for owner %s failed: %s", owner_id, e)
        return []
    return [
        MetricPoint(db_id=p.target_id, name=p.name, time=p.time, cpu=p.cpu, memory=p.memory)
        for p in points
    ]

@app.get("/healthz", response_model=Health)
async def healthz():
    return Health(status="ok")
