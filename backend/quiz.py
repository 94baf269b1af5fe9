import json
import logging
import math
from typing import Any, List, Optional

from errors import QuizGenerationError
from models import QuizQuestion
from utils import strip_code_fences

logger = logging.getLogger(__name__)

QUIZ_LENGTH = 5
OPTIONS_PER_QUESTION = 4

QUIZ_PROMPT_TEMPLATE = """
You are ClimateSage, an expert climate science teacher writing a multiple-choice quiz.

Topic requested by the learner: "{topic}"

Rules:
1. Write exactly {count} questions about the topic, suitable for a general audience.
2. Each question has exactly {options} distinct answer options.
3. "correctAnswer" is the 0-based index of the correct option.
4. "explanation" is one or two sentences explaining the correct answer.
5. Return ONLY a valid JSON array. No markdown code blocks, no commentary.

Example Output:
[
  {{
    "question": "What is the main greenhouse gas emitted by human activities?",
    "options": ["Oxygen", "Carbon Dioxide", "Nitrogen", "Hydrogen"],
    "correctAnswer": 1,
    "explanation": "Carbon dioxide from burning fossil fuels is the largest human contribution to the greenhouse effect."
  }}
]
"""


def build_quiz_prompt(topic: str) -> str:
    return QUIZ_PROMPT_TEMPLATE.format(
        topic=(topic or "").strip() or "climate change",
        count=QUIZ_LENGTH,
        options=OPTIONS_PER_QUESTION,
    )


def _coerce_answer_index(value: Any, option_count: int) -> int:
    # bool is an int subclass but never a valid index
    if isinstance(value, bool):
        return 0
    if isinstance(value, int):
        index = value
    else:
        try:
            number = float(value)
        except (TypeError, ValueError, OverflowError):
            return 0
        if math.isnan(number) or math.isinf(number):
            return 0
        index = math.floor(number)
    upper = min(OPTIONS_PER_QUESTION, option_count) - 1
    if index < 0 or index > upper:
        return 0
    return index


def _build_question(item: Any, question_id: int) -> Optional[QuizQuestion]:
    if not isinstance(item, dict):
        return None
    text = item.get("question")
    options = item.get("options")
    if not isinstance(text, str) or not text.strip():
        return None
    if not isinstance(options, list) or not options:
        return None

    options = [str(option) for option in options[:OPTIONS_PER_QUESTION]]
    correct_text = options[_coerce_answer_index(item.get("correctAnswer"), len(options))]
    # Repeated options collapse to their first occurrence
    options = list(dict.fromkeys(options))
    explanation = item.get("explanation")
    return QuizQuestion(
        id=question_id,
        question=text,
        options=options,
        correct_answer=options.index(correct_text),
        explanation=explanation if isinstance(explanation, str) else "",
    )


def parse_quiz(raw: str) -> List[QuizQuestion]:
    """
    Turns the model's raw text into at most five validated questions.

    The text may be wrapped in a ```json fence. Anything that isn't a JSON
    array fails the whole quiz; malformed items inside the array are skipped
    and out-of-range answer indices fall back to 0.
    """
    cleaned = strip_code_fences(raw)
    try:
        parsed = json.loads(cleaned)
    except (TypeError, ValueError) as e:
        logger.error(f"Quiz response is not valid JSON: {e}")
        raise QuizGenerationError("Failed to parse quiz questions") from e

    if not isinstance(parsed, list):
        raise QuizGenerationError("Quiz response is not a list of questions")

    questions: List[QuizQuestion] = []
    for item in parsed[:QUIZ_LENGTH]:
        question = _build_question(item, len(questions) + 1)
        if question is None:
            logger.warning(f"Skipping malformed quiz item: {item!r}")
            continue
        questions.append(question)

    if not questions:
        raise QuizGenerationError("no questions generated")
    return questions


def grade_answer(question: QuizQuestion, selected: int) -> bool:
    if not 0 <= selected < len(question.options):
        raise ValueError(f"Answer {selected} is out of range for question {question.id}")
    return selected == question.correct_answer
