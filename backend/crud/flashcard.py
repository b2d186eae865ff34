from sqlalchemy.orm import Session
from backend.models import FlashcardSet, Flashcard
from backend.schemas import SetCreate
from typing import List, Optional

def create_set(db: Session, new_set: SetCreate) -> FlashcardSet:
    """Create a flashcard set together with its cards"""
    db_set = FlashcardSet(
        name=new_set.name,
        description=new_set.description,
        card_count=len(new_set.cards)
    )
    for card in new_set.cards:
        db_set.cards.append(Flashcard(**card.model_dump()))
    db.add(db_set)
    db.commit()
    db.refresh(db_set)
    return db_set

def get_sets(db: Session) -> List[FlashcardSet]:
    """Get all flashcard sets, oldest first"""
    return db.query(FlashcardSet).order_by(FlashcardSet.created_at).all()

def get_set(db: Session, set_id: str) -> Optional[FlashcardSet]:
    return db.query(FlashcardSet).filter(FlashcardSet.id == set_id).first()

def get_cards_by_set(db: Session, set_id: str) -> List[Flashcard]:
    return db.query(Flashcard).filter(Flashcard.set_id == set_id).order_by(Flashcard.id).all()

def delete_set(db: Session, set_id: str) -> bool:
    """Delete a set; cards and their progress go with it"""
    db_set = get_set(db, set_id)
    if not db_set:
        return False
    db.delete(db_set)
    db.commit()
    return True
