"""Sample set inserted by `flashcards seed`"""

from sqlalchemy.orm import Session

from backend.crud import create_set, get_sets
from backend.models import FlashcardSet
from backend.schemas import CardCreate, SetCreate

SAMPLE_SET_NAME = "AI Fundamentals"

SAMPLE_CARDS = [
    CardCreate(
        term="LLM",
        definition="Large Language Model: a neural network trained on large text corpora to understand and generate text.",
        hint="A very well-read librarian who can write about anything.",
    ),
    CardCreate(
        term="Transformer",
        definition="A neural network architecture that uses self-attention to process a whole sequence in parallel.",
        hint="Translators who see the whole sentence at once.",
    ),
    CardCreate(
        term="Token",
        definition="The basic unit of text an LLM processes, usually a word or word piece.",
        hint="Scrabble tiles.",
    ),
    CardCreate(
        term="Embedding",
        definition="A dense vector representing the meaning of a piece of text.",
        hint="GPS coordinates in meaning-space.",
    ),
    CardCreate(
        term="Context Window",
        definition="The maximum number of tokens a model can take into account at once.",
    ),
    CardCreate(
        term="Temperature",
        definition="Sampling parameter controlling randomness; higher is more varied, lower is more deterministic.",
    ),
    CardCreate(
        term="Hallucination",
        definition="Output that sounds plausible but is factually wrong.",
        hint="A confident storyteller mixing up facts.",
    ),
    CardCreate(
        term="RAG",
        definition="Retrieval-Augmented Generation: answering with documents fetched from an external store.",
    ),
]


def seed_sample_set(db: Session) -> FlashcardSet:
    """Create the sample set unless a set with the same name exists"""
    for existing in get_sets(db):
        if existing.name == SAMPLE_SET_NAME:
            return existing
    return create_set(db, SetCreate(
        name=SAMPLE_SET_NAME,
        description="Core vocabulary of modern language models",
        cards=SAMPLE_CARDS,
    ))
