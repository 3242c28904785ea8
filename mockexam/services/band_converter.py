# mockexam/services/band_converter.py
import math

from mockexam.models.exam_section import SectionType

FULL_RAW_SCORE = 40

# (minimum raw score out of 40, band), highest threshold first
LISTENING_BANDS = (
    (39, 9.0),
    (37, 8.5),
    (35, 8.0),
    (32, 7.5),
    (30, 7.0),
    (26, 6.5),
    (23, 6.0),
    (18, 5.5),
    (16, 5.0),
    (13, 4.5),
    (11, 4.0),
    (8, 3.5),
    (6, 3.0),
    (4, 2.5),
    (2, 2.0),
    (1, 1.0),
)

# Academic Reading
READING_BANDS = (
    (39, 9.0),
    (37, 8.5),
    (35, 8.0),
    (33, 7.5),
    (30, 7.0),
    (27, 6.5),
    (23, 6.0),
    (19, 5.5),
    (15, 5.0),
    (13, 4.5),
    (10, 4.0),
    (8, 3.5),
    (6, 3.0),
    (4, 2.5),
    (2, 2.0),
    (1, 1.0),
)


def round_half_up(value: float) -> int:
    return math.floor(value + 0.5)


def band_table(section_type: str) -> tuple[tuple[int, float], ...]:
    if section_type == SectionType.LISTENING:
        return LISTENING_BANDS
    return READING_BANDS


def normalize_raw_score(score: float, total_score: float) -> float:
    """Scale a score onto the 40-question raw scale."""
    if total_score == FULL_RAW_SCORE:
        return score
    if total_score <= 0:
        return 0
    return round_half_up(score / total_score * FULL_RAW_SCORE)


def to_band(score: float, total_score: float, section_type: str) -> float:
    raw_score = normalize_raw_score(score, total_score)
    for min_raw, band in band_table(section_type):
        if raw_score >= min_raw:
            return band
    return 0.0
