from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field


class SignatureEntry(BaseModel):
    """
    One signature to stamp onto the PDF. x/y/width/height are fractions of the
    page size with a top-left origin; width/height default when omitted.
    """
    page: int = Field(..., ge=1)
    x: float = Field(..., ge=0, le=1)
    y: float = Field(..., ge=0, le=1)
    width: Optional[float] = Field(None, gt=0, le=1)
    height: Optional[float] = Field(None, gt=0, le=1)
    image_data_url: str = Field(..., alias="imageDataUrl", min_length=1)
    name: str = "Unknown"
    ip_address: str = Field("Unknown", alias="ipAddress")
    timestamp: Optional[datetime] = None
    placeholder_id: Optional[int] = Field(None, alias="placeholderId")

    model_config = {"populate_by_name": True}
