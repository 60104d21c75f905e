"""Job record and analysis result data models."""

import uuid
from dataclasses import dataclass
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field


class JobStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.COMPLETED, JobStatus.FAILED)

    @property
    def rank(self) -> int:
        # Terminal states share a rank: neither may follow the other
        return {
            JobStatus.PENDING: 0,
            JobStatus.PROCESSING: 1,
            JobStatus.COMPLETED: 2,
            JobStatus.FAILED: 2,
        }[self]


class Classification(str, Enum):
    HIGH_RISK = "high_risk"
    MODERATE_RISK = "moderate_risk"
    HEALTHY = "healthy"


class Paper(BaseModel):
    title: str
    url: str


class Ingredient(BaseModel):
    name: str
    classification: Classification
    explanation: str
    papers: List[Paper] = Field(default_factory=list)


class AnalysisResult(BaseModel):
    ingredients: List[Ingredient] = Field(default_factory=list)


class JobRecord(BaseModel):
    """Tracks the lifecycle of one label analysis.

    `result` is only set on completed jobs and `error` only on failed ones.
    `timestamp` is the last mutation time in epoch milliseconds.
    """
    id: str
    status: JobStatus = JobStatus.PENDING
    result: Optional[AnalysisResult] = None
    error: Optional[str] = None
    timestamp: int


def new_job_id() -> str:
    return uuid.uuid4().hex


@dataclass
class AnalysisRequest:
    """Payload handed to the worker pool for one submitted image."""
    job_id: str
    image_bytes: bytes
    content_type: Optional[str] = None
