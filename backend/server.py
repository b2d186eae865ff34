import logging
from contextlib import asynccontextmanager
from typing import List, Optional, Tuple

from fastapi import Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from backend.config import VERSION, settings
from backend.crud import apply_rating, get_progress_for_set, get_set, get_sets, get_stats
from backend.database import get_db, init_db
from backend.errors import AuthorizationError, FlashcardsError, NotFoundError
from backend.identity import is_guest_id, require_identity, require_same_identity
from backend.schemas import (
    CardWithProgress,
    HealthResponse,
    ProgressResponse,
    RateRequest,
    SetResponse,
    StatsResponse,
)
from backend.sm2 import get_mastery_level
from backend.stats import StatsAggregator

logger = logging.getLogger("backend.server")


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    logging.basicConfig(level=settings.log_level)
    init_db()
    logger.info("Flashcards server v%s starting up...", VERSION)
    yield
    # Shutdown
    logger.info("Flashcards server shutting down...")


app = FastAPI(
    title="Flashcards Server",
    description="Spaced-repetition scheduling service for flashcard study clients.",
    version=VERSION,
    lifespan=lifespan,
)


@app.exception_handler(FlashcardsError)
async def flashcards_error_handler(request: Request, exc: FlashcardsError):
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc, exc_info=exc)
    elif isinstance(exc, AuthorizationError):
        logger.warning("Rejected %s %s: %s", request.method, request.url.path, exc)
    else:
        logger.info("%s %s -> %d: %s", request.method, request.url.path, exc.status_code, exc)
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.public_message})


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(status_code=400, content={"detail": "Invalid request data"})


def request_identity(request: Request) -> Tuple[Optional[str], Optional[str]]:
    """(authenticated user id, guest id) as supplied by the request headers"""
    return (
        request.headers.get(settings.auth_user_header),
        request.headers.get(settings.guest_header),
    )


@app.get("/health", response_model=HealthResponse)
async def health_check():
    """Connectivity probe used by clients before replaying queued ratings"""
    return HealthResponse(status="ok", version=VERSION)


@app.get("/api/sets", response_model=List[SetResponse])
def list_sets(db: Session = Depends(get_db)):
    return [SetResponse.model_validate(s) for s in get_sets(db)]


@app.get("/api/sets/{set_id}/cards/{user_id}", response_model=List[CardWithProgress])
def list_cards_with_progress(
    set_id: str,
    user_id: str,
    identity: Tuple[Optional[str], Optional[str]] = Depends(request_identity),
    db: Session = Depends(get_db),
):
    """Cards of a set merged with the user's scheduling state"""
    require_same_identity(user_id, *identity)
    if get_set(db, set_id) is None:
        raise NotFoundError(f"Set {set_id} does not exist")

    return [
        CardWithProgress(
            id=card.id,
            set_id=card.set_id,
            term=card.term,
            definition=card.definition,
            hint=card.hint,
            easiness_factor=progress.easiness_factor,
            interval=progress.interval,
            repetitions=progress.repetitions,
            last_review_date=progress.last_review_date,
            next_due_date=progress.next_due_date,
            mastery=get_mastery_level(progress.repetitions, progress.easiness_factor, progress.interval),
        )
        for card, progress in get_progress_for_set(db, user_id, set_id)
    ]


@app.post("/api/progress/rate", response_model=ProgressResponse)
def rate_card(
    req: RateRequest,
    identity: Tuple[Optional[str], Optional[str]] = Depends(request_identity),
    db: Session = Depends(get_db),
):
    """Record a quality rating and return the updated progress record"""
    user_id = require_identity(*identity)
    progress = apply_rating(db, user_id, req.card_id, req.quality)
    return ProgressResponse.model_validate(progress)


@app.get("/api/stats/{user_id}", response_model=StatsResponse)
def read_stats(
    user_id: str,
    identity: Tuple[Optional[str], Optional[str]] = Depends(request_identity),
    db: Session = Depends(get_db),
):
    require_same_identity(user_id, *identity)
    if is_guest_id(user_id):
        return StatsResponse(user_id=user_id, is_tracked=False)

    stats = get_stats(db, user_id)
    if stats is None:
        return StatsResponse(user_id=user_id)
    return StatsResponse(
        user_id=user_id,
        total_reviews=stats.total_reviews,
        correct_reviews=stats.correct_reviews,
        current_streak=stats.current_streak,
        longest_streak=stats.longest_streak,
        last_review_date=stats.last_review_date,
        accuracy=StatsAggregator.accuracy(stats.correct_reviews, stats.total_reviews),
    )
