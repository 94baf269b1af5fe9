from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Dict, List, Optional

from starlette.concurrency import run_in_threadpool

from errors import RemoteServiceError
from llm import AIGateway
from models import (
    AnswerResult,
    ChatMessage,
    ChatSession,
    ChatTurn,
    QuizAttempt,
    QuizHistoryEntry,
)
from quiz import QUIZ_LENGTH, grade_answer, parse_quiz
from storage import SessionStore
from topics import chart_payload, classify_topic, should_show_chart
from utils import DEFAULT_TITLE, generate_title, new_id, now

logger = logging.getLogger(__name__)

ChatsHook = Callable[[List[ChatSession]], Awaitable[None]]
HistoryHook = Callable[[List[QuizHistoryEntry]], Awaitable[None]]

CHAT_ERROR_REPLY = "I couldn't generate a response right now. Please try again."


@dataclass(frozen=True)
class RequestTicket:
    session_id: str
    generation: int


class AppState:
    """
    Chat sessions, quiz attempts and quiz history for one user.

    Every mutation awaits the matching on-changed hook, which receives the
    full collection.
    """

    def __init__(
        self,
        gateway: AIGateway,
        chat_store: Optional[SessionStore] = None,
        history_store: Optional[SessionStore] = None,
        on_chats_changed: Optional[ChatsHook] = None,
        on_history_changed: Optional[HistoryHook] = None,
    ):
        self.gateway = gateway
        self.chat_store = chat_store
        self.history_store = history_store
        # Persist through the stores unless a hook is given
        self.on_chats_changed = on_chats_changed or (chat_store.save_all if chat_store else None)
        self.on_history_changed = on_history_changed or (history_store.save_all if history_store else None)
        self.sessions: Dict[str, ChatSession] = {}
        self.current_session_id: Optional[str] = None
        self.quiz_history: List[QuizHistoryEntry] = []
        self.quizzes: Dict[str, QuizAttempt] = {}
        self._generations: Dict[str, int] = {}

    async def load(self) -> None:
        if self.chat_store is not None:
            self.sessions = {s.id: s for s in await self.chat_store.load_all()}
        if self.history_store is not None:
            self.quiz_history = await self.history_store.load_all()
        self._generations = {}
        most_recent = self.list_sessions()
        self.current_session_id = most_recent[0].id if most_recent else None
        logger.info(f"Loaded {len(self.sessions)} chat sessions and {len(self.quiz_history)} quiz results")

    # A failed save keeps the in-memory state; the next successful save writes it all
    async def _chats_changed(self) -> None:
        if self.on_chats_changed is None:
            return
        try:
            await self.on_chats_changed(list(self.sessions.values()))
        except Exception:
            logger.exception("Failed to save chat sessions")

    async def _history_changed(self) -> None:
        if self.on_history_changed is None:
            return
        try:
            await self.on_history_changed(list(self.quiz_history))
        except Exception:
            logger.exception("Failed to save quiz history")

    # Chat sessions

    def list_sessions(self) -> List[ChatSession]:
        return sorted(self.sessions.values(), key=lambda s: s.updated_at, reverse=True)

    def get_session(self, session_id: str) -> Optional[ChatSession]:
        return self.sessions.get(session_id)

    @property
    def current_session(self) -> Optional[ChatSession]:
        if self.current_session_id is None:
            return None
        return self.sessions.get(self.current_session_id)

    def _require_session(self, session_id: str) -> ChatSession:
        session = self.sessions.get(session_id)
        if session is None:
            raise KeyError(session_id)
        return session

    async def create_session(self) -> ChatSession:
        timestamp = now()
        session = ChatSession(id=new_id(), title=DEFAULT_TITLE, created_at=timestamp, updated_at=timestamp)
        self.sessions[session.id] = session
        self.current_session_id = session.id
        await self._chats_changed()
        return session

    async def select_session(self, session_id: str) -> ChatSession:
        session = self._require_session(session_id)
        self.current_session_id = session.id
        return session

    async def update_session(
        self,
        session_id: str,
        title: Optional[str] = None,
        conversation_id: Optional[str] = None,
    ) -> ChatSession:
        session = self._require_session(session_id)
        if title is not None:
            if not title.strip():
                raise ValueError("Title cannot be empty")
            session.title = title.strip()
        if conversation_id is not None:
            session.conversation_id = conversation_id or None
        session.updated_at = now()
        await self._chats_changed()
        return session

    async def delete_session(self, session_id: str) -> None:
        self._require_session(session_id)
        del self.sessions[session_id]
        self._generations[session_id] = self._generations.get(session_id, 0) + 1
        if self.current_session_id == session_id:
            remaining = self.list_sessions()
            self.current_session_id = remaining[0].id if remaining else None
        await self._chats_changed()

    def begin_request(self, session_id: str) -> RequestTicket:
        return RequestTicket(session_id, self._generations.get(session_id, 0))

    def is_stale(self, ticket: RequestTicket) -> bool:
        if ticket.session_id not in self.sessions:
            return True
        return self._generations.get(ticket.session_id, 0) != ticket.generation

    async def send_message(
        self,
        text: str,
        session_id: Optional[str] = None,
        audio_url: Optional[str] = None,
    ) -> ChatTurn:
        """
        Appends the user's message, asks the tutor and appends the reply.

        The reply goes to the session the message was sent to. If that
        session is deleted while the request is in flight, the reply is
        returned with applied=False and nothing is stored.
        """
        text = (text or "").strip()
        if not text:
            raise ValueError("Message cannot be empty")

        if session_id is not None:
            session = self._require_session(session_id)
            self.current_session_id = session.id
        else:
            session = self.current_session or await self.create_session()

        topic = classify_topic(text)
        user_message = ChatMessage(
            id=new_id(),
            role="user",
            text=text,
            topic=topic,
            audio_url=audio_url,
            timestamp=now(),
        )
        if not any(m.role == "user" for m in session.messages):
            session.title = generate_title(text)
        session.messages.append(user_message)
        session.updated_at = user_message.timestamp
        await self._chats_changed()

        ticket = self.begin_request(session.id)
        chart = None
        try:
            reply = await run_in_threadpool(self.gateway.ask_chat, text)
            if should_show_chart(text, topic, reply):
                chart = chart_payload()
        except RemoteServiceError as e:
            logger.error(f"Chat request failed: {e.message}")
            reply = f"{CHAT_ERROR_REPLY} ({e.message})"

        assistant_message = ChatMessage(
            id=new_id(),
            role="assistant",
            text=reply,
            topic=topic,
            chart=chart,
            timestamp=now(),
        )

        if self.is_stale(ticket):
            logger.info(f"Discarding reply for session {ticket.session_id}; it changed while the request was running")
            return ChatTurn(
                session_id=ticket.session_id,
                user_message=user_message,
                assistant_message=assistant_message,
                applied=False,
            )

        session.messages.append(assistant_message)
        session.updated_at = assistant_message.timestamp
        await self._chats_changed()
        return ChatTurn(session_id=session.id, user_message=user_message, assistant_message=assistant_message)

    # Quizzes

    async def start_quiz(self, prompt: str) -> QuizAttempt:
        prompt = (prompt or "").strip()
        if not prompt:
            raise ValueError("Quiz topic cannot be empty")

        raw = await run_in_threadpool(self.gateway.generate_quiz, prompt)
        questions = parse_quiz(raw)
        if len(questions) < QUIZ_LENGTH:
            logger.warning(f"Quiz for '{prompt}' has only {len(questions)} questions")

        attempt = QuizAttempt(id=new_id(), prompt=prompt, questions=questions, created_at=now())
        self.quizzes[attempt.id] = attempt
        return attempt

    def get_quiz(self, quiz_id: str) -> Optional[QuizAttempt]:
        return self.quizzes.get(quiz_id)

    def answer_question(self, quiz_id: str, question_id: int, selected: int) -> AnswerResult:
        attempt = self.quizzes.get(quiz_id)
        if attempt is None:
            raise KeyError(quiz_id)
        question = next((q for q in attempt.questions if q.id == question_id), None)
        if question is None:
            raise KeyError(question_id)
        if question_id in attempt.answers:
            raise ValueError(f"Question {question_id} was already answered")

        correct = grade_answer(question, selected)
        attempt.answers[question_id] = selected
        if correct:
            attempt.score += 1

        return AnswerResult(
            quiz_id=attempt.id,
            question_id=question.id,
            selected=selected,
            correct=correct,
            correct_answer=question.correct_answer,
            explanation=question.explanation,
            score=attempt.score,
            answered=len(attempt.answers),
            total_questions=len(attempt.questions),
            completed=attempt.completed,
        )

    async def finish_quiz(self, quiz_id: str) -> QuizHistoryEntry:
        attempt = self.quizzes.get(quiz_id)
        if attempt is None:
            raise KeyError(quiz_id)
        if not attempt.completed:
            remaining = len(attempt.questions) - len(attempt.answers)
            raise ValueError(f"{remaining} question(s) still unanswered")

        entry = QuizHistoryEntry(
            id=new_id(),
            prompt=attempt.prompt,
            score=attempt.score,
            total_questions=len(attempt.questions),
            completed_at=now(),
            questions=attempt.questions,
        )
        self.quiz_history.insert(0, entry)
        del self.quizzes[quiz_id]
        await self._history_changed()
        return entry

    def list_history(self) -> List[QuizHistoryEntry]:
        return sorted(self.quiz_history, key=lambda e: e.completed_at, reverse=True)

    async def delete_history_entry(self, entry_id: str) -> None:
        remaining = [e for e in self.quiz_history if e.id != entry_id]
        if len(remaining) == len(self.quiz_history):
            raise KeyError(entry_id)
        self.quiz_history = remaining
        await self._history_changed()
