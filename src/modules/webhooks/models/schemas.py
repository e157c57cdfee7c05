from datetime import datetime
from typing import List

from pydantic import BaseModel, Field, HttpUrl


class WebhookRegisterRequest(BaseModel):
    url: HttpUrl
    events: List[str] = Field(..., min_length=1)


class WebhookResponse(BaseModel):
    id: int
    url: str
    events: List[str]
    created_at: datetime

    model_config = {"from_attributes": True}
