"""
Journal API.

- POST /v1/journals: create an entry (free: 2/day)
- GET  /v1/journals: list own entries
- POST /v1/journals/suggest-basic: basic writing prompts (free: 3/day)
"""
from typing import List, Optional, Union

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field

from moodjournal.core.auth import get_current_user
from moodjournal.features.journals.service import create_journal, list_journals, suggest_basic
from moodjournal.models.journal import Journal
from moodjournal.models.user import User

router = APIRouter(prefix="/v1/journals", tags=["journals"])


class CreateJournalRequest(BaseModel):
    content: str = Field(..., min_length=1)
    title: Optional[str] = None
    mood: Optional[str] = None


class JournalListResponse(BaseModel):
    journals: List[Journal]
    total: int
    page: int
    limit: int


class SuggestRequest(BaseModel):
    mood: Optional[str] = None
    topic: Optional[str] = None


class SuggestResponse(BaseModel):
    suggestions: List[str]
    mood: Optional[str] = None
    topic: Optional[str] = None
    remaining_today: Union[int, str]


@router.post("", response_model=Journal, status_code=201)
def create(request: CreateJournalRequest, user: User = Depends(get_current_user)):
    return create_journal(user, content=request.content, title=request.title, mood=request.mood)


@router.get("", response_model=JournalListResponse)
def list_own(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    user: User = Depends(get_current_user),
):
    items, total = list_journals(user, page=page, limit=limit)
    return {"journals": items, "total": total, "page": page, "limit": limit}


@router.post("/suggest-basic", response_model=SuggestResponse)
def suggest(request: SuggestRequest, user: User = Depends(get_current_user)):
    return suggest_basic(user, mood=request.mood, topic=request.topic)
