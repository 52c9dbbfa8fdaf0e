from fastapi import APIRouter, HTTPException, Depends
from fastapi.security import HTTPBearer
from typing import Optional, Dict, List
from pydantic import BaseModel, Field
from ..models import EnrollmentRecord, LearningRecords, LessonRecord, QuizSubmission
from ..services.student_context_service import StudentContextService
from ..dependencies import get_redis

class LearningRecordsPatch(BaseModel):
    full_name: Optional[str] = None
    email: Optional[str] = None
    enrollments: Optional[List[EnrollmentRecord]] = Field(default=None)
    quiz_submissions: Optional[List[QuizSubmission]] = Field(default=None)
    watch_time_seconds: Optional[int] = Field(default=None, ge=0)
    course_lessons: Optional[Dict[str, List[LessonRecord]]] = Field(default=None)
    completed_lesson_ids: Optional[List[str]] = Field(default=None)

security = HTTPBearer()

router = APIRouter(
    prefix="/students",
    tags=["student-records"],
    dependencies=[Depends(security)]
)

def get_service(r=Depends(get_redis)):
    return StudentContextService(r)

@router.get("/{student_id}/records", response_model=LearningRecords)
async def get_records(student_id: str, svc: StudentContextService = Depends(get_service)):
    records = await svc.get_records(student_id)
    if not records:
        raise HTTPException(status_code=404, detail="Learning records not found")
    return records

@router.put("/{student_id}/records", response_model=LearningRecords)
async def put_records(student_id: str, records: LearningRecords, svc: StudentContextService = Depends(get_service)):
    if records.student_id != student_id:
        raise HTTPException(status_code=400, detail="student_id mismatch between path and body")
    ok = await svc.put_records(records)
    if not ok:
        raise HTTPException(status_code=503, detail="Failed to persist learning records")
    return records

@router.patch("/{student_id}/records", response_model=LearningRecords)
async def patch_records(student_id: str, updates: LearningRecordsPatch, svc: StudentContextService = Depends(get_service)):
    records = await svc.patch_records(student_id, updates.model_dump(exclude_unset=True))
    if not records:
        raise HTTPException(status_code=503, detail="Failed to persist learning records")
    return records
