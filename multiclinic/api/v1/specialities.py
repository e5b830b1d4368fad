from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from typing import List

from ...core.database import get_db
from ...api.deps import get_system_admin
from ...models.user import User
from ...schemas.clinic import SpecialityCreate, SpecialityResponse
from ...services.clinic_service import ClinicService

router = APIRouter(prefix="/specialities", tags=["Specialities"])


@router.get("", response_model=List[SpecialityResponse])
async def list_specialities(db: Session = Depends(get_db)):
    return ClinicService(db).list_specialities()


@router.post("", response_model=SpecialityResponse, status_code=201)
async def create_speciality(
    dto: SpecialityCreate,
    current_user: User = Depends(get_system_admin),
    db: Session = Depends(get_db),
):
    """Add a speciality to the shared catalogue."""
    return ClinicService(db).create_speciality(dto)
