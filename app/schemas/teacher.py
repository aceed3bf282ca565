from pydantic import BaseModel, Field
from typing import Optional, List
from uuid import UUID
from enum import Enum

from app.models.teacher import AgePreference, TeachingFormat


class SearchTeachingType(str, Enum):
    ONLINE = "ONLINE"
    IN_PERSON = "IN_PERSON"


class TeacherSearchParams(BaseModel):
    teaching_type: SearchTeachingType = Field(..., description="Online or in person")
    instrument: str = Field(..., min_length=1, description="Instrument name")
    language: Optional[str] = Field(None, description="Language name or code")
    student_age: Optional[int] = Field(None, ge=0, description="Age of the student")

    # Online search
    timezone: Optional[str] = Field(None, description="Searcher's timezone")
    max_time_difference: Optional[float] = Field(None, ge=0, description="Maximum hour difference")

    # In-person search
    distance: Optional[float] = Field(None, gt=0, description="Radius in miles")
    postal_code: Optional[str] = Field(None, description="Postal code to search around")
    address_id: Optional[UUID] = Field(None, description="Saved address to search around")

    limit: int = Field(20, ge=1, le=100, description="Number of results to return")


class TeacherSearchResult(BaseModel):
    teacher_id: UUID = Field(..., description="Teacher ID")
    profile_name: Optional[str] = Field(None, description="Profile slug")
    first_name: Optional[str] = Field(None, description="First name")
    last_name: Optional[str] = Field(None, description="Last name")
    image_url: Optional[str] = Field(None, description="Profile image URL")
    bio: Optional[str] = Field(None, description="Teacher bio")
    teaching_format: TeachingFormat = Field(..., description="Teaching format")
    age_preference: AgePreference = Field(..., description="Ages taught")
    timezone: Optional[str] = Field(None, description="Teacher's timezone")
    instruments: List[str] = Field(default_factory=list, description="Instruments taught")
    languages: List[str] = Field(default_factory=list, description="Languages spoken")
    distance_miles: Optional[float] = Field(None, description="Distance, in-person search only")
    time_difference_hours: Optional[float] = Field(None, description="Hour difference, online search only")


class TeacherProfileResponse(BaseModel):
    teacher_id: UUID = Field(..., description="Teacher ID")
    user_id: UUID = Field(..., description="User ID")
    profile_name: Optional[str] = Field(None, description="Profile slug")
    first_name: Optional[str] = Field(None, description="First name")
    last_name: Optional[str] = Field(None, description="Last name")
    image_url: Optional[str] = Field(None, description="Profile image URL")
    bio: Optional[str] = Field(None, description="Teacher bio")
    accepting_students: bool = Field(..., description="Whether new students are accepted")
    teaching_format: TeachingFormat = Field(..., description="Teaching format")
    age_preference: AgePreference = Field(..., description="Ages taught")
    timezone: Optional[str] = Field(None, description="Teacher's timezone")
    timezone_label: str = Field(..., description="Display name with GMT offset")
    instruments: List[str] = Field(default_factory=list, description="Instruments taught")
    languages: List[str] = Field(default_factory=list, description="Languages spoken")


class CatalogItem(BaseModel):
    id: UUID = Field(..., description="ID")
    name: str = Field(..., description="Display name")
    code: Optional[str] = Field(None, description="Language code")


class CatalogResponse(BaseModel):
    instruments: List[CatalogItem] = Field(default_factory=list, description="All instruments")
    languages: List[CatalogItem] = Field(default_factory=list, description="All languages")
