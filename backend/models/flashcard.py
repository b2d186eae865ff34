from sqlalchemy import Column, String, Text, ForeignKey
from sqlalchemy.orm import relationship
from backend.database import Base
from backend.models.flashcard_set import _new_id


class Flashcard(Base):
    """Static card content; never modified by the scheduler"""
    __tablename__ = "flashcards"

    id = Column(String(36), primary_key=True, default=_new_id)
    set_id = Column(String(36), ForeignKey("flashcard_sets.id", ondelete="CASCADE"), nullable=False, index=True)
    term = Column(Text, nullable=False)
    definition = Column(Text, nullable=False)
    hint = Column(Text)  # optional memory aid

    flashcard_set = relationship("FlashcardSet", back_populates="cards")
    progress = relationship("CardProgress", back_populates="card", cascade="all, delete-orphan", passive_deletes=True)
