from pydantic import BaseModel, Field

from school_eval.core.references import RefId


class CourseCreate(BaseModel):
    name: str = Field(min_length=1, max_length=120)


class CourseOut(BaseModel):
    id: str
    name: str


class SubjectCreate(BaseModel):
    name: str = Field(min_length=1, max_length=120)
    course_id: RefId


class SubjectOut(BaseModel):
    id: str
    name: str
    course_id: str
