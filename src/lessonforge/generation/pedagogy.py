"""Keyword heuristics for choosing a pedagogy when none is given."""

import re

from lessonforge.models import Accessibility, PedagogyConfig

ADVANCED_KEYWORDS = (
    "javascript",
    "typescript",
    "react",
    "programming",
    "code",
    "algorithm",
    "advanced",
    "college",
    "university",
    "professional",
    "software engineering",
)

INTERMEDIATE_KEYWORDS = (
    "algebra",
    "equation",
    "geometry",
    "chemistry",
    "physics",
    "biology",
    "intermediate",
    "high school",
    "middle school",
)


def _mentions(topic: str, keywords: tuple[str, ...]) -> bool:
    return any(re.search(r"\b" + re.escape(keyword) + r"\b", topic) for keyword in keywords)


def infer_pedagogy(topic: str) -> PedagogyConfig:
    """Pick grade band, reading level and cognitive load from topic keywords.

    Advanced keywords win over intermediate ones. Topics matching neither
    get an elementary profile.
    """
    text = topic.lower()
    if _mentions(text, ADVANCED_KEYWORDS):
        grade_band, reading_level, cognitive_load = "9-12", "advanced", "high"
    elif _mentions(text, INTERMEDIATE_KEYWORDS):
        grade_band, reading_level, cognitive_load = "6-8", "intermediate", "medium"
    else:
        grade_band, reading_level, cognitive_load = "3-5", "basic", "low"

    return PedagogyConfig(
        grade_band=grade_band,
        reading_level=reading_level,
        language_tone="friendly",
        cognitive_load=cognitive_load,
        accessibility=Accessibility(
            min_font_size_px=16, high_contrast=True, captions_preferred=False
        ),
    )
