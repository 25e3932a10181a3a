from pydantic import BaseModel, ConfigDict, Field
from datetime import datetime
from typing import Optional, List, Any


class RunSubmission(BaseModel):
    """
    Inbound run upload from the client.

    Fields are typed `Any` so no payload is rejected here. The ingestion
    gateway checks types, timestamps, numbers and trajectory samples, and
    every rejection carries a specific 400 message.
    """
    id: Optional[Any] = None
    start_time: Optional[Any] = None  # ISO-8601
    end_time: Optional[Any] = None  # ISO-8601
    duration: Optional[Any] = None  # seconds
    distance: Optional[Any] = None  # meters
    activity_type: Optional[Any] = None
    polyline: Optional[Any] = None
    raw_data: Optional[Any] = None  # list of {lat, lng, time}
    metadata: Optional[Any] = None  # free-form object


class RunReceipt(BaseModel):
    id: str
    run_status: str
    received_at: datetime


class RunSubmissionResponse(BaseModel):
    status: str = "success"
    message: Optional[str] = None
    data: RunReceipt


class RunLoopResponse(BaseModel):
    run_id: str
    cycle_key: str
    loop_start_index: int
    loop_end_index: int
    boundary_hexes: List[str] = Field(default_factory=list)
    enclosed_hexes: List[str] = Field(default_factory=list)
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)
