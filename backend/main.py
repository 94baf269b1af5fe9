from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import List, Optional

from fastapi import Depends, FastAPI, File, Form, HTTPException, Request, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from starlette.concurrency import run_in_threadpool

import config
import speech
from errors import MediaAccessError, QuizGenerationError, RemoteServiceError
from llm import AIGateway
from models import (
    AnswerResult,
    ChartPoint,
    ChatSession,
    ChatTurn,
    QuizAttempt,
    QuizHistoryEntry,
)
from state import AppState
from storage import SessionStore, create_backend
from topics import chart_payload

logging.basicConfig(level=config.LOG_LEVEL, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    backend = create_backend()
    state = AppState(
        AIGateway(),
        chat_store=SessionStore(backend, config.CHAT_SESSIONS_KEY, ChatSession),
        history_store=SessionStore(backend, config.QUIZ_HISTORY_KEY, QuizHistoryEntry),
    )
    await state.load()
    app.state.app_state = state
    yield


app = FastAPI(title="ClimateSage API", lifespan=lifespan)
app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ORIGINS,
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)


def get_state(request: Request) -> AppState:
    return request.app.state.app_state


@app.exception_handler(RemoteServiceError)
async def remote_service_error_handler(request: Request, exc: RemoteServiceError):
    return JSONResponse(status_code=exc.http_status, content={"error": exc.message})


@app.exception_handler(QuizGenerationError)
async def quiz_generation_error_handler(request: Request, exc: QuizGenerationError):
    logger.error(f"Quiz generation failed: {exc.message}")
    return JSONResponse(
        status_code=422,
        content={"error": f"Failed to generate quiz: {exc.message}. Please try again."},
    )


@app.exception_handler(MediaAccessError)
async def media_access_error_handler(request: Request, exc: MediaAccessError):
    return JSONResponse(status_code=400, content={"error": exc.message})


class ChatRequest(BaseModel):
    message: str
    audio_url: Optional[str] = None


class SessionUpdateRequest(BaseModel):
    title: Optional[str] = None
    conversation_id: Optional[str] = None


class QuizRequest(BaseModel):
    prompt: str


class AnswerRequest(BaseModel):
    question_id: int
    selected: int


class SignedUrlRequest(BaseModel):
    agentType: Optional[str] = None


def _require_chat(state: AppState, chat_id: str) -> ChatSession:
    chat = state.get_session(chat_id)
    if not chat:
        raise HTTPException(status_code=404, detail="Chat not found")
    return chat


def _require_quiz(state: AppState, quiz_id: str) -> QuizAttempt:
    quiz = state.get_quiz(quiz_id)
    if not quiz:
        raise HTTPException(status_code=404, detail="Quiz not found")
    return quiz


@app.get("/")
def read_root():
    return {"status": "ok", "message": "ClimateSage API is running"}


@app.get("/health")
async def health(state: AppState = Depends(get_state)):
    try:
        if state.chat_store is not None:
            await state.chat_store.ping()
        return {"status": "ok"}
    except Exception:
        logger.exception("Storage health check failed")
        raise HTTPException(status_code=503, detail="Storage unavailable")


# Chat


@app.post("/chat", response_model=ChatTurn)
async def chat(req: ChatRequest, state: AppState = Depends(get_state)):
    if not req.message.strip():
        raise HTTPException(status_code=400, detail="Message cannot be empty")
    return await state.send_message(req.message, audio_url=req.audio_url)


@app.post("/chat/new", response_model=ChatSession)
async def create_chat(state: AppState = Depends(get_state)):
    return await state.create_session()


@app.get("/chat/list", response_model=List[ChatSession])
async def list_chats(state: AppState = Depends(get_state)):
    return state.list_sessions()


@app.get("/chat/current", response_model=Optional[ChatSession])
async def current_chat(state: AppState = Depends(get_state)):
    return state.current_session


@app.get("/chat/{chat_id}", response_model=ChatSession)
async def get_chat(chat_id: str, state: AppState = Depends(get_state)):
    return _require_chat(state, chat_id)


@app.post("/chat/{chat_id}/message", response_model=ChatTurn)
async def post_message(chat_id: str, req: ChatRequest, state: AppState = Depends(get_state)):
    _require_chat(state, chat_id)
    if not req.message.strip():
        raise HTTPException(status_code=400, detail="Message cannot be empty")
    return await state.send_message(req.message, session_id=chat_id, audio_url=req.audio_url)


@app.post("/chat/{chat_id}/select", response_model=ChatSession)
async def select_chat(chat_id: str, state: AppState = Depends(get_state)):
    _require_chat(state, chat_id)
    return await state.select_session(chat_id)


@app.patch("/chat/{chat_id}", response_model=ChatSession)
async def update_chat(chat_id: str, req: SessionUpdateRequest, state: AppState = Depends(get_state)):
    _require_chat(state, chat_id)
    try:
        return await state.update_session(chat_id, title=req.title, conversation_id=req.conversation_id)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


@app.delete("/chat/{chat_id}")
async def delete_chat(chat_id: str, state: AppState = Depends(get_state)):
    _require_chat(state, chat_id)
    await state.delete_session(chat_id)
    return {"deleted": True, "chat_id": chat_id, "current_chat_id": state.current_session_id}


@app.get("/data/co2", response_model=List[ChartPoint])
def co2_data():
    return chart_payload()


# Quiz


@app.post("/quiz/generate", response_model=QuizAttempt)
async def generate_quiz(req: QuizRequest, state: AppState = Depends(get_state)):
    if not req.prompt.strip():
        raise HTTPException(status_code=400, detail="Quiz topic cannot be empty")
    return await state.start_quiz(req.prompt)


@app.post("/quiz/{quiz_id}/answer", response_model=AnswerResult)
async def answer_question(quiz_id: str, req: AnswerRequest, state: AppState = Depends(get_state)):
    quiz = _require_quiz(state, quiz_id)
    if not any(q.id == req.question_id for q in quiz.questions):
        raise HTTPException(status_code=404, detail="Question not found")
    if req.question_id in quiz.answers:
        raise HTTPException(status_code=409, detail="Question already answered")
    try:
        return state.answer_question(quiz_id, req.question_id, req.selected)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


@app.post("/quiz/{quiz_id}/finish", response_model=QuizHistoryEntry)
async def finish_quiz(quiz_id: str, state: AppState = Depends(get_state)):
    _require_quiz(state, quiz_id)
    try:
        return await state.finish_quiz(quiz_id)
    except ValueError as e:
        raise HTTPException(status_code=409, detail=str(e))


@app.get("/quiz/history", response_model=List[QuizHistoryEntry])
async def quiz_history(state: AppState = Depends(get_state)):
    return state.list_history()


@app.delete("/quiz/history/{entry_id}")
async def delete_quiz_history(entry_id: str, state: AppState = Depends(get_state)):
    try:
        await state.delete_history_entry(entry_id)
    except KeyError:
        raise HTTPException(status_code=404, detail="Quiz result not found")
    return {"deleted": True, "id": entry_id}


# Voice


@app.post("/speech-to-text")
async def speech_to_text(
    file: Optional[UploadFile] = File(None),
    model_id: str = Form(speech.DEFAULT_STT_MODEL),
):
    if file is None:
        raise MediaAccessError("No audio file provided")
    audio = await file.read()
    text = await run_in_threadpool(
        speech.transcribe,
        audio,
        file.filename or "recording.webm",
        file.content_type or "application/octet-stream",
        model_id,
    )
    return {"text": text}


@app.post("/elevenlabs-url")
async def elevenlabs_url(req: Optional[SignedUrlRequest] = None):
    agent_type = req.agentType if req is not None else None
    signed_url = await run_in_threadpool(speech.get_signed_url, agent_type)
    return {"signedUrl": signed_url}
