from pydantic import BaseModel, ConfigDict, Field
from typing import Optional, List
from datetime import date
from uuid import UUID

from app.models.student import Proficiency
from app.models.teacher import AgePreference, TeachingFormat
from app.models.user import UserRole


class UserResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID = Field(..., description="User ID")
    email: Optional[str] = Field(None, description="Email")
    first_name: Optional[str] = Field(None, description="First name")
    last_name: Optional[str] = Field(None, description="Last name")
    image_url: Optional[str] = Field(None, description="Profile image URL")
    role: Optional[UserRole] = Field(None, description="Role, unset until onboarding")
    preferred_timezone: Optional[str] = Field(None, description="IANA timezone")


class ChildCreate(BaseModel):
    first_name: str = Field(..., min_length=1, description="Child's first name")
    last_name: Optional[str] = Field(None, description="Child's last name")
    date_of_birth: Optional[date] = Field(None, description="Child's date of birth")


class StudentResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID = Field(..., description="Student ID")
    user_id: Optional[UUID] = Field(None, description="User ID for self-managed students")
    parent_id: Optional[UUID] = Field(None, description="Parent user ID for children")
    first_name: Optional[str] = Field(None, description="First name")
    last_name: Optional[str] = Field(None, description="Last name")
    date_of_birth: Optional[date] = Field(None, description="Date of birth")


class OnboardingRequest(BaseModel):
    role: UserRole = Field(..., description="TEACHER, STUDENT or PARENT")
    preferred_timezone: Optional[str] = Field(None, description="IANA timezone")

    # Teacher fields
    bio: Optional[str] = Field(None, description="Teacher bio")
    teaching_format: Optional[TeachingFormat] = Field(None, description="Teaching format")
    age_preference: Optional[AgePreference] = Field(None, description="Ages taught")
    instruments: List[str] = Field(default_factory=list, description="Instruments taught")
    languages: List[str] = Field(default_factory=list, description="Language codes spoken")

    # Student fields
    date_of_birth: Optional[date] = Field(None, description="Student's date of birth")

    # Parent fields
    children: List[ChildCreate] = Field(default_factory=list, description="Children to add")


class PreferencesUpdate(BaseModel):
    preferred_timezone: str = Field(..., description="IANA timezone")


class InstrumentProficiencyRequest(BaseModel):
    instrument: str = Field(..., min_length=1, description="Instrument name")
    proficiency: Proficiency = Field(..., description="Proficiency level")


class AddressCreate(BaseModel):
    street: str = Field(..., min_length=1, description="Street address")
    unit: Optional[str] = Field(None, description="Apartment or unit")
    city: str = Field(..., min_length=1, description="City")
    state: str = Field(..., min_length=1, description="State")
    postal_code: str = Field(..., min_length=1, description="Postal code")
    country: str = Field("United States", description="Country")


class AddressResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID = Field(..., description="Address ID")
    address_formatted: str = Field(..., description="Normalised address")
    latitude: Optional[float] = Field(None, description="Latitude")
    longitude: Optional[float] = Field(None, description="Longitude")


class StudentInstrumentResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    student_id: UUID = Field(..., description="Student ID")
    instrument_id: UUID = Field(..., description="Instrument ID")
    proficiency: Proficiency = Field(..., description="Proficiency level")
