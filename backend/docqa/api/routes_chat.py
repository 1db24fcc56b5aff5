"""Question-answering API routes."""

from __future__ import annotations

from fastapi import APIRouter, Depends
from fastapi.concurrency import run_in_threadpool

from docqa.api.dependencies import get_answer_synthesizer
from docqa.chat.service import AnswerSynthesizer
from docqa.models.dto import AskRequest, AskResponse

router = APIRouter()


@router.post("/ask", response_model=AskResponse, summary="Answer a question from the user's documents")
async def ask(
    request: AskRequest,
    synthesizer: AnswerSynthesizer = Depends(get_answer_synthesizer),
) -> AskResponse:
    result = await run_in_threadpool(synthesizer.answer, request.question, request.user_id)
    return AskResponse(answer=result.answer, sources=result.sources)


__all__ = ["router"]
