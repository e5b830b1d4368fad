from pydantic import BaseModel, ConfigDict
from typing import Optional
from datetime import datetime


class NotificationResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    user_id: int
    appointment_id: Optional[int] = None
    message: str
    type: str
    is_read: bool
    sent_at: Optional[datetime] = None
