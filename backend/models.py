from datetime import datetime
from enum import Enum
from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


class TopicLabel(str, Enum):
    CLIMATE_SCIENCE = "Climate Science"
    RENEWABLE_ENERGY = "Renewable Energy"
    POLICY = "Policy"
    IMPACT = "Impact"


class ChartPoint(BaseModel):
    year: int
    co2: float


class ChatMessage(BaseModel):
    id: str
    role: Literal['user', 'assistant']
    text: str
    topic: Optional[TopicLabel] = None
    chart: Optional[List[ChartPoint]] = None
    audio_url: Optional[str] = None
    timestamp: datetime

    @model_validator(mode="after")
    def _user_text_required(self):
        if self.role == "user" and not self.text.strip():
            raise ValueError("user messages must have text")
        return self


class ChatSession(BaseModel):
    id: str
    title: str = "New Chat"
    messages: List[ChatMessage] = Field(default_factory=list)
    created_at: datetime
    updated_at: datetime
    conversation_id: Optional[str] = None


class QuizQuestion(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: int
    question: str
    options: List[str]
    correct_answer: int = Field(0, alias="correctAnswer")
    explanation: str = ""

    @field_validator("options")
    @classmethod
    def _at_most_four(cls, options: List[str]) -> List[str]:
        if not options or len(options) > 4:
            raise ValueError("a question needs between 1 and 4 options")
        if len(set(options)) != len(options):
            raise ValueError("options must be distinct")
        return options

    @model_validator(mode="after")
    def _answer_in_range(self):
        if not 0 <= self.correct_answer < len(self.options):
            raise ValueError("correctAnswer out of range")
        return self


class QuizAttempt(BaseModel):
    id: str
    prompt: str
    questions: List[QuizQuestion]
    answers: Dict[int, int] = Field(default_factory=dict)
    score: int = 0
    created_at: datetime

    @property
    def completed(self) -> bool:
        return len(self.answers) == len(self.questions)


class QuizHistoryEntry(BaseModel):
    id: str
    prompt: str
    score: int = Field(ge=0)
    total_questions: int
    completed_at: datetime
    questions: List[QuizQuestion]


class ChatTurn(BaseModel):
    session_id: str
    user_message: ChatMessage
    assistant_message: ChatMessage
    applied: bool = True


class AnswerResult(BaseModel):
    quiz_id: str
    question_id: int
    selected: int
    correct: bool
    correct_answer: int
    explanation: str
    score: int
    answered: int
    total_questions: int
    completed: bool
