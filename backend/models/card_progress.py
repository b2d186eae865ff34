from sqlalchemy import Column, Integer, String, Float, DateTime, ForeignKey, UniqueConstraint
from sqlalchemy.orm import relationship
from backend.database import Base
from backend.sm2 import utcnow


class CardProgress(Base):
    """SM-2 scheduling state per (user, card)"""
    __tablename__ = "card_progress"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(String, nullable=False, index=True)  # account id or guest id
    card_id = Column(String(36), ForeignKey("flashcards.id", ondelete="CASCADE"), nullable=False)

    # SM-2 algorithm fields
    easiness_factor = Column(Float, nullable=False, default=2.5)
    interval = Column(Integer, nullable=False, default=1)  # days until next review
    repetitions = Column(Integer, nullable=False, default=0)  # successes since last lapse

    last_review_date = Column(DateTime)  # None = never reviewed
    next_due_date = Column(DateTime, nullable=False, default=utcnow)

    version = Column(Integer, nullable=False)

    card = relationship("Flashcard", back_populates="progress")

    __table_args__ = (
        UniqueConstraint("user_id", "card_id", name="uq_card_progress_user_card"),
    )
    __mapper_args__ = {"version_id_col": version}
