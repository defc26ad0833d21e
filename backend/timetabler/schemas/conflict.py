from pydantic import BaseModel
from typing import Literal, Optional

class ConflictDetail(BaseModel):
    conflict_type: Literal["class_conflict", "teacher_conflict"]
    entry_id: str
    subject_id: str
    teacher_id: Optional[str] = None
    class_level_id: str
    subclass_letter: str
    day: str
    start_time: str
    end_time: str
    description: str
