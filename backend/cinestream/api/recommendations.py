from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
import logging

from cinestream.api.deps import get_current_user
from cinestream.core.database import get_db
from cinestream.models import User
from cinestream.services import recommendation_service

router = APIRouter()
logger = logging.getLogger(__name__)


@router.get("")
def my_recommendations(
    limit: int = Query(10, ge=1, le=50),
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Movies from the caller's most-watched genres; trending when there is nothing to go on."""
    source, data = recommendation_service.for_user(db, user.id, limit)
    return {"source": source, "data": data}


@router.get("/trending")
def trending(limit: int = Query(10, ge=1, le=50), db: Session = Depends(get_db)):
    return {"data": recommendation_service.trending(db, limit)}


@router.get("/similar/{slug}")
def similar(slug: str, limit: int = Query(10, ge=1, le=50), db: Session = Depends(get_db)):
    return {"movie_slug": slug, "data": recommendation_service.similar(db, slug, limit)}
