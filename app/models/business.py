from datetime import datetime, time
from enum import Enum
from typing import Dict, List, Literal, Optional, Union

from pydantic import BaseModel, Field, field_validator

WEEKDAYS = ("monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday")


class BusinessStatus(str, Enum):
    DRAFT = "draft"
    PUBLISHED = "published"
    SUSPENDED = "suspended"


class Category(BaseModel):
    id: str
    name: str
    slug: str


class BusinessLocation(BaseModel):
    address: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    zip: Optional[str] = None
    latitude: Optional[float] = Field(None, ge=-90, le=90)
    longitude: Optional[float] = Field(None, ge=-180, le=180)

    @property
    def has_coordinates(self) -> bool:
        return self.latitude is not None and self.longitude is not None


class HoursWindow(BaseModel):
    """Opening window for one weekday, 24h "HH:MM" strings"""

    open: time
    close: time

    @field_validator("open", "close", mode="before")
    @classmethod
    def parse_clock(cls, v):
        if isinstance(v, str):
            try:
                hours, minutes = v.strip().split(":")[:2]
                return time(int(hours) % 24, int(minutes))
            except ValueError:
                raise ValueError(f"Invalid time of day: {v!r}")
        return v

    @property
    def crosses_midnight(self) -> bool:
        return self.close <= self.open


DayHours = Union[HoursWindow, Literal["closed"]]


class Business(BaseModel):
    id: str
    name: str
    description: str = ""
    status: BusinessStatus = BusinessStatus.PUBLISHED
    location: BusinessLocation = Field(default_factory=BusinessLocation)
    rating: float = Field(0.0, ge=0, le=5)
    review_count: int = Field(0, ge=0)
    categories: List[Category] = []
    price_tier: Optional[int] = Field(None, ge=1, le=4)
    hours: Dict[str, DayHours] = {}
    verified: bool = False
    featured: bool = False
    sponsored: bool = False
    photos: List[str] = []
    service_area_radius: Optional[float] = Field(None, ge=0)
    created_at: Optional[datetime] = None
    timezone: Optional[str] = None

    class Config:
        from_attributes = True
        json_schema_extra = {
            "example": {
                "id": "biz_123",
                "name": "Pizza Palace",
                "description": "Authentic Italian pizza with fresh ingredients.",
                "status": "published",
                "location": {
                    "address": "789 Pizza St",
                    "city": "San Francisco",
                    "state": "CA",
                    "zip": "94103",
                    "latitude": 37.7649,
                    "longitude": -122.4294,
                },
                "rating": 4.7,
                "review_count": 234,
                "categories": [{"id": "pizza", "name": "Pizza", "slug": "pizza"}],
                "price_tier": 2,
                "hours": {"monday": {"open": "11:00", "close": "22:00"}, "sunday": "closed"},
                "verified": True,
                "featured": True,
                "photos": ["https://images.example.com/pizza.jpg"],
                "service_area_radius": 5.0,
            }
        }

    @field_validator("hours", mode="before")
    @classmethod
    def normalize_weekdays(cls, v):
        if not v:
            return {}
        normalized = {}
        for day, window in dict(v).items():
            key = str(day).strip().lower()
            if key not in WEEKDAYS:
                raise ValueError(f"Unknown weekday: {day!r}")
            if isinstance(window, str) and window.strip().lower() == "closed":
                window = "closed"
            normalized[key] = window
        return normalized

    @property
    def category_slugs(self) -> List[str]:
        return [category.slug for category in self.categories]


class Review(BaseModel):
    id: str
    rating: float = Field(..., ge=0, le=5)
    text: Optional[str] = None
    created_at: Optional[datetime] = None
    user_name: Optional[str] = None


class BusinessPhoto(BaseModel):
    id: str
    url: str
    alt_text: Optional[str] = None
    is_primary: bool = False


class BusinessWithRelations(Business):
    reviews: List[Review] = []
    photo_details: List[BusinessPhoto] = []
