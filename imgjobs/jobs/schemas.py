"""
Pydantic schemas for S3 event notifications delivered through SQS.
"""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


class S3Object(BaseModel):
    """The ``s3.object`` part of an event record."""

    model_config = ConfigDict(extra="ignore")

    key: str = Field(..., min_length=1, description="URL-encoded object key")
    size: int = Field(default=0, ge=0, description="Object size in bytes")


class S3Entity(BaseModel):
    model_config = ConfigDict(extra="ignore")

    object: S3Object


class S3EventRecord(BaseModel):
    model_config = ConfigDict(extra="ignore")

    event_time: datetime = Field(..., alias="eventTime")
    s3: S3Entity


class S3EventNotification(BaseModel):
    """Notification envelope; only the first record is used."""

    model_config = ConfigDict(extra="ignore")

    records: list[S3EventRecord] = Field(..., alias="Records", min_length=1)

    @property
    def first(self) -> S3EventRecord:
        return self.records[0]
