"""Wire contract of the transcription endpoint (JSON over HTTP)."""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

DEFAULT_MIME_TYPE = "audio/webm"


class TranscribeRequest(BaseModel):
    """Request body: ``{audio: <base64>, mimeType: <string>}``."""
    model_config = ConfigDict(populate_by_name=True)

    audio: str = Field(min_length=1, description="Base64 audio, optionally as a data URL")
    mime_type: str = Field(default=DEFAULT_MIME_TYPE, alias="mimeType")


class TranscribeResponse(BaseModel):
    """Success body: ``{text: <string>, confidence?: <float 0..1>}``."""
    text: Optional[str] = None
    confidence: Optional[float] = Field(default=None, ge=0.0, le=1.0)


class ErrorResponse(BaseModel):
    """Error body sent with a non-2xx status."""
    error: str
    details: Optional[str] = None
