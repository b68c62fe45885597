from pydantic import BaseModel

from app.models.room import RoomType


class RoomOut(BaseModel):
    id: str
    code: str
    name: str
    type: RoomType
    capacity: int
    location: str | None = None

    model_config = {"from_attributes": True}
