# api/app/schemas.py
from pydantic import BaseModel
from datetime import datetime

class MetricPoint(BaseModel):
    db_id: int
    name: str
    time: datetime  # start of the minute bucket, UTC
    cpu: float
    memory: float

class Health(BaseModel):
    status: str
