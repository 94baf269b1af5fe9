import re
from typing import List, Tuple

from models import ChartPoint, TopicLabel

_TOPIC_KEYWORDS: List[Tuple[TopicLabel, Tuple[str, ...]]] = [
    (TopicLabel.RENEWABLE_ENERGY, ("renewable", "solar", "wind", "energy")),
    (TopicLabel.POLICY, ("paris", "agreement", "policy", "policies", "treaty")),
    (TopicLabel.IMPACT, ("impact", "effect", "consequence", "damage")),
]

# Keywords that name CO2 itself
CO2_KEYWORDS = (
    "co2",
    "co₂",
    "carbon dioxide",
    "atmospheric co2",
    "co2 levels",
    "co2 emissions",
    "co2 concentration",
)

# Carbon terms that usually mean CO2 but don't say so
CARBON_PROXY_KEYWORDS = (
    "carbon emissions",
    "carbon concentration",
    "keeling curve",
)

GENERAL_CLIMATE_KEYWORDS = (
    "greenhouse gas",
    "greenhouse gases",
    "global warming",
    "climate change",
)

NON_CO2_TOPIC_KEYWORDS = (
    "renewable",
    "solar",
    "wind",
    "policy",
    "paris",
    "agreement",
    "treaty",
    "weather",
    "cloud",
    "temperature",
    "rain",
    "storm",
    "hurricane",
    "flood",
    "drought",
)

NON_CO2_GAS_KEYWORDS = (
    "ozone",
    "methane",
    "nitrous oxide",
    "hfc",
    "pfc",
    "sf6",
    "water vapor",
    "water vapour",
    "nitrogen",
    "oxygen",
)

_NON_CO2_TOPICS = (TopicLabel.RENEWABLE_ENERGY, TopicLabel.POLICY)

ATMOSPHERIC_KEYWORDS = (
    "atmosphere",
    "atmospheric",
    "weather",
    "cloud",
    "humidity",
    "precipitation",
    "jet stream",
    "air pressure",
)

# Mauna Loa annual mean CO2 (ppm)
CO2_SERIES: List[Tuple[int, float]] = [
    (1960, 316.91),
    (1965, 320.04),
    (1970, 325.68),
    (1975, 331.11),
    (1980, 338.76),
    (1985, 346.35),
    (1990, 354.45),
    (1995, 360.97),
    (2000, 369.71),
    (2005, 379.98),
    (2010, 389.90),
    (2015, 401.01),
    (2020, 414.21),
    (2021, 416.41),
    (2022, 418.53),
    (2023, 421.08),
]


def _contains_any(text: str, keywords) -> bool:
    return any(k in text for k in keywords)


def _word_pattern(keywords) -> "re.Pattern[str]":
    # Whole words with common inflections: "rain" and "raining" but not "train"
    alternatives = "|".join(re.escape(k) for k in keywords)
    return re.compile(rf"\b(?:{alternatives})(?:s|es|d|ed|ing)?\b")


_TOPIC_PATTERNS = [(label, _word_pattern(keywords)) for label, keywords in _TOPIC_KEYWORDS]
_NON_CO2_TOPIC_PATTERN = _word_pattern(NON_CO2_TOPIC_KEYWORDS)
_ATMOSPHERIC_PATTERN = _word_pattern(ATMOSPHERIC_KEYWORDS)


def classify_topic(text: str) -> TopicLabel:
    lowered = (text or "").lower()
    for label, pattern in _TOPIC_PATTERNS:
        if pattern.search(lowered):
            return label
    return TopicLabel.CLIMATE_SCIENCE


def should_show_chart(question: str, topic: TopicLabel, response_text: str) -> bool:
    """
    Decides whether the CO2 trend chart belongs next to an answer.

    Direct CO2 mentions always win. General climate wording only shows the
    chart when the question isn't about another topic and the answer isn't
    about another gas or the weather.
    """
    question_lower = (question or "").lower()
    combined = f"{question_lower} {(response_text or '').lower()}"

    if _contains_any(combined, CO2_KEYWORDS):
        return True

    mentions_other_gas = _contains_any(combined, NON_CO2_GAS_KEYWORDS)
    if _contains_any(combined, CARBON_PROXY_KEYWORDS) and not mentions_other_gas:
        return True

    if not _contains_any(combined, GENERAL_CLIMATE_KEYWORDS):
        return False
    if topic in _NON_CO2_TOPICS or _NON_CO2_TOPIC_PATTERN.search(question_lower):
        return False
    if mentions_other_gas:
        return False
    if _ATMOSPHERIC_PATTERN.search(combined):
        return False
    return True


def chart_payload() -> List[ChartPoint]:
    return [ChartPoint(year=year, co2=co2) for year, co2 in CO2_SERIES]
