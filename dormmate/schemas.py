from datetime import date
from typing import Literal

from pydantic import BaseModel, EmailStr, Field, field_validator, model_validator

from dormmate.utils.mess import is_valid_day, is_valid_meal_type, normalize_day, normalize_meal_type


PaymentStatusLiteral = Literal['pending', 'partial', 'complete', 'refunded']
BookingStatusLiteral = Literal['pending', 'approved', 'cancelled', 'completed']
RoomAmenity = Literal['wifi', 'ac', 'tv', 'fridge', 'bathroom', 'balcony', 'study_desk']


class SignupRequest(BaseModel):
    email: EmailStr
    password: str = Field(min_length=6)
    full_name: str = Field(min_length=3)
    role: str | None = 'student'


class LoginRequest(BaseModel):
    email: EmailStr
    password: str = Field(min_length=6)


class RoleSelectRequest(BaseModel):
    role: str


class StudentCreateRequest(BaseModel):
    full_name: str = Field(min_length=2)
    email: EmailStr
    password: str = Field(min_length=6)


class StudentUpdateRequest(BaseModel):
    full_name: str = Field(min_length=2)
    email: EmailStr


class RoomRequest(BaseModel):
    room_number: str = Field(min_length=1)
    floor: str = Field(min_length=1)
    capacity: int = Field(default=2, ge=1)
    price_per_month: float = Field(default=0, ge=0)
    amenities: list[RoomAmenity] = Field(default_factory=list)


class BookingRequest(BaseModel):
    user_id: int
    room_id: int
    start_date: date
    end_date: date
    payment_status: PaymentStatusLiteral = 'pending'
    status: BookingStatusLiteral = 'pending'

    @model_validator(mode='after')
    def _dates_in_order(self):
        if self.end_date < self.start_date:
            raise ValueError('End date must be on or after the start date')
        return self


class MessMenuRequest(BaseModel):
    day_of_week: str
    meal_type: str
    items: list[str] = Field(min_length=1)

    @field_validator('day_of_week')
    @classmethod
    def _valid_day(cls, value: str) -> str:
        if not is_valid_day(value):
            raise ValueError('Day of week is required')
        return normalize_day(value)

    @field_validator('meal_type')
    @classmethod
    def _valid_meal(cls, value: str) -> str:
        if not is_valid_meal_type(value):
            raise ValueError('Meal type is required')
        return normalize_meal_type(value)

    @field_validator('items')
    @classmethod
    def _clean_items(cls, value: list[str]) -> list[str]:
        cleaned = [item.strip() for item in value if item and item.strip()]
        if not cleaned:
            raise ValueError('At least one item is required')
        return cleaned


class HostelRegisterRequest(BaseModel):
    name: str = Field(min_length=3)
    size: Literal['small', 'medium', 'large'] = 'medium'
    location: Literal['tier_1', 'tier_2', 'tier_3'] = 'tier_2'
    address: str = Field(min_length=5)
    city: str = Field(min_length=2)
    email: EmailStr
    phone: str = Field(min_length=10)
    description: str = ''
    amenities: list[str] = Field(default_factory=list)
    price_range_min: float = Field(default=0, ge=0)
    price_range_max: float = Field(default=0, ge=0)


class HostelApprovalRequest(BaseModel):
    approve: bool


class ChatRequest(BaseModel):
    message: str = Field(min_length=1)
