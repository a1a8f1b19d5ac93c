from pydantic import BaseModel


class NotificationOut(BaseModel):
    id: str
    user_id: str
    type: str
    title: str
    message: str
    ride_id: str | None = None
    data: dict | None = None
    is_read: bool
    read_at: str | None = None
    created_at: str | None = None
