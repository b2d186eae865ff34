import uuid
from sqlalchemy import Column, Integer, String, Text, DateTime
from sqlalchemy.orm import relationship
from backend.database import Base
from backend.sm2 import utcnow


def _new_id() -> str:
    return str(uuid.uuid4())


class FlashcardSet(Base):
    """Named collection of term/definition cards"""
    __tablename__ = "flashcard_sets"

    id = Column(String(36), primary_key=True, default=_new_id)
    name = Column(String, nullable=False)
    description = Column(Text)
    card_count = Column(Integer, default=0)
    created_at = Column(DateTime, default=utcnow)

    cards = relationship(
        "Flashcard",
        back_populates="flashcard_set",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )
