from pydantic import BaseModel


class CourseOut(BaseModel):
    id: str
    code: str
    name: str
    required_capacity: int
    instructor_ids: list[str]

    model_config = {"from_attributes": True}
