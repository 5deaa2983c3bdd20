from pydantic import BaseModel, Field
from typing import Optional


class OrderConfirmationRequest(BaseModel):
    order_id: Optional[str] = Field(default=None, alias="orderId")

    class Config:
        populate_by_name = True
