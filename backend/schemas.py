from pydantic import AliasChoices, BaseModel, Field
from typing import List, Optional
from datetime import datetime

class CardCreate(BaseModel):
    """Schema for one card of a new set"""
    term: str = Field(min_length=1)
    definition: str = Field(min_length=1)
    hint: Optional[str] = None

class SetCreate(BaseModel):
    """Schema for creating a flashcard set with its cards"""
    name: str = Field(min_length=1)
    description: Optional[str] = None
    cards: List[CardCreate] = []

class SetResponse(BaseModel):
    id: str
    name: str
    description: Optional[str] = None
    card_count: int = 0
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True

class RateRequest(BaseModel):
    """Body of a rating submission"""
    card_id: str = Field(min_length=1, validation_alias=AliasChoices("card_id", "cardId"))
    quality: int = Field(ge=0, le=5, strict=True)

class ProgressResponse(BaseModel):
    """Scheduling state of one card for one user"""
    user_id: str
    card_id: str
    easiness_factor: float
    interval: int
    repetitions: int
    last_review_date: Optional[datetime] = None
    next_due_date: datetime

    class Config:
        from_attributes = True

class CardWithProgress(BaseModel):
    """Card content merged with the requesting user's progress"""
    id: str
    set_id: str
    term: str
    definition: str
    hint: Optional[str] = None
    easiness_factor: float = 2.5
    interval: int = 1
    repetitions: int = 0
    last_review_date: Optional[datetime] = None
    next_due_date: datetime
    mastery: str = "new"

class StatsResponse(BaseModel):
    user_id: str
    total_reviews: int = 0
    correct_reviews: int = 0
    current_streak: int = 0
    longest_streak: int = 0
    last_review_date: Optional[datetime] = None
    accuracy: int = 0  # percent
    is_tracked: bool = True

class HealthResponse(BaseModel):
    status: str
    version: str
