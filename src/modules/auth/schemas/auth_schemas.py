from datetime import datetime
from pydantic import BaseModel, EmailStr, Field
from typing import Optional, List

class LoginRequest(BaseModel):
    email: EmailStr
    password: str

class TokenResponse(BaseModel):
    access_token: str
    token_type: str
    admin_id: int
    admin_name: str

class AdminCreate(BaseModel):
    name: str
    email: EmailStr
    password: str = Field(..., min_length=8)

class AdminResponse(BaseModel):
    id: int
    name: str
    email: str
    is_active: bool
    created_at: datetime

    model_config = {"from_attributes": True}

class ApiKeyCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    expires_in_days: Optional[int] = Field(None, gt=0, le=3650)

class ApiKeyResponse(BaseModel):
    id: int
    name: str
    partial_key: str
    expires_at: Optional[datetime] = None
    revoked: bool
    last_used: Optional[datetime] = None
    created_at: datetime

    model_config = {"from_attributes": True}

class ApiKeyCreatedResponse(ApiKeyResponse):
    # Plaintext key, returned by the create call only
    apiKey: str

class ApiKeyListResponse(BaseModel):
    apiKeys: List[ApiKeyResponse]
    total: int
