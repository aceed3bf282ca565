from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession
from typing import List
from uuid import UUID

from app.core.database import get_db
from app.core.auth import get_current_user
from app.models.user import User
from app.schemas.user import (
    AddressCreate,
    AddressResponse,
    ChildCreate,
    InstrumentProficiencyRequest,
    OnboardingRequest,
    PreferencesUpdate,
    StudentInstrumentResponse,
    StudentResponse,
    UserResponse,
)
from app.services.address_service import AddressService
from app.services.user_service import UserService

router = APIRouter()


@router.get("/me", response_model=UserResponse)
async def get_me(current_user: User = Depends(get_current_user)):
    """Get the current user"""
    return current_user


@router.post("/me/onboarding", response_model=UserResponse)
async def complete_onboarding(
    request: OnboardingRequest,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Pick a role and create the matching profile"""
    return await UserService(db).complete_onboarding(
        current_user,
        request.role,
        preferred_timezone=request.preferred_timezone,
        bio=request.bio,
        teaching_format=request.teaching_format,
        age_preference=request.age_preference,
        instruments=request.instruments,
        languages=request.languages,
        date_of_birth=request.date_of_birth,
        children=[child.model_dump() for child in request.children]
    )


@router.put("/me/preferences", response_model=UserResponse)
async def update_preferences(
    request: PreferencesUpdate,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Update the current user's timezone"""
    return await UserService(db).update_preferences(current_user, request.preferred_timezone)


@router.get("/me/children", response_model=List[StudentResponse])
async def list_children(
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Get the current parent's children"""
    return await UserService(db).list_children(current_user)


@router.post("/me/children", response_model=StudentResponse, status_code=status.HTTP_201_CREATED)
async def add_child(
    request: ChildCreate,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Add a child to the current parent"""
    return await UserService(db).add_child(
        current_user, request.first_name, request.last_name, request.date_of_birth
    )


@router.put("/me/students/{student_id}/instruments", response_model=StudentInstrumentResponse)
async def set_instrument_proficiency(
    student_id: UUID,
    request: InstrumentProficiencyRequest,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Set a student's proficiency on an instrument"""
    return await UserService(db).set_instrument_proficiency(
        current_user, student_id, request.instrument, request.proficiency
    )


@router.get("/me/addresses", response_model=List[AddressResponse])
async def list_addresses(
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Get the current user's saved addresses"""
    return await AddressService(db).list_user_addresses(current_user)


@router.post("/me/addresses", response_model=AddressResponse, status_code=status.HTTP_201_CREATED)
async def add_address(
    request: AddressCreate,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Save and geocode an address for the current user"""
    return await AddressService(db).save_user_address(current_user, request.model_dump())
