from sqlalchemy import Column, Integer, String, DateTime
from backend.database import Base


class UserStats(Base):
    """Review counters and streaks for a signed-in user (guests have none)"""
    __tablename__ = "user_stats"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(String, nullable=False, unique=True)

    total_reviews = Column(Integer, nullable=False, default=0)
    correct_reviews = Column(Integer, nullable=False, default=0)
    current_streak = Column(Integer, nullable=False, default=0)
    longest_streak = Column(Integer, nullable=False, default=0)
    last_review_date = Column(DateTime)

    version = Column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}
