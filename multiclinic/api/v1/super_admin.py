from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from typing import List

from ...core.database import get_db
from ...api.deps import get_system_admin
from ...models.user import User
from ...schemas.auth import MessageResponse
from ...schemas.clinic import ClinicDetail, ClinicOverview, CreateClinicWithAdmin
from ...services.super_admin_service import SuperAdminService

router = APIRouter(prefix="/super-admin", tags=["Super Admin"])


@router.post("/create-clinic-with-admin", status_code=201)
async def create_clinic_with_admin(
    dto: CreateClinicWithAdmin,
    current_user: User = Depends(get_system_admin),
    db: Session = Depends(get_db),
):
    """Create a clinic and its admin in one go, with a password you choose."""
    result = SuperAdminService(db).create_clinic_with_admin(dto)
    return {
        "message": result["message"],
        "clinic": ClinicDetail.model_validate(result["clinic"]),
    }


@router.get("/clinics", response_model=List[ClinicOverview])
async def get_all_clinics(
    current_user: User = Depends(get_system_admin),
    db: Session = Depends(get_db),
):
    """Every clinic with admin and patient counts."""
    return SuperAdminService(db).get_all_clinics()


@router.patch("/verify-user/{user_id}", response_model=MessageResponse)
async def verify_user_email(
    user_id: int,
    current_user: User = Depends(get_system_admin),
    db: Session = Depends(get_db),
):
    """Mark a user's email as verified without the emailed link."""
    user = SuperAdminService(db).verify_user_email(user_id)
    return MessageResponse(message=f"Email for {user.email} verified successfully")
