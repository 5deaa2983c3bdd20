from pydantic import BaseModel, EmailStr, Field
from datetime import datetime
from typing import Any, Dict, Optional


class QueueProcessRequest(BaseModel):
    batch_size: Any = Field(default=50, alias="batchSize")
    api_key: Optional[str] = Field(default=None, alias="apiKey")

    class Config:
        populate_by_name = True


class QueueEnqueueRequest(BaseModel):
    api_key: Optional[str] = Field(default=None, alias="apiKey")
    email_type: str
    recipient_email: EmailStr
    subject: str
    template_id: Optional[str] = None
    template_data: Dict[str, Any] = {}
    user_id: Optional[int] = None
    priority: Optional[int] = None
    scheduled_for: Optional[datetime] = None

    class Config:
        populate_by_name = True
