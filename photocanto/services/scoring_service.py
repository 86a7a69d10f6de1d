"""
Pronunciation scoring.

Turns the reference text, the recognized transcript and the recognizer's
confidence into a score report. Everything here is pure: no I/O, no clock,
no shared state.
"""
import re
import Levenshtein
from decimal import Decimal, ROUND_HALF_UP

from photocanto.utils.helpers import _clamp

# Lowercase Latin letters, digits and CJK ideographs U+4E00..U+9FA5
_NON_COMPARABLE_RE = re.compile(r"[^\u4e00-\u9fa5a-z0-9]")

# Tunable; keeps recognized speech from getting a punitive tone estimate.
TONE_ACCURACY_FLOOR = 60

SIMILARITY_WEIGHT = 0.6
CONFIDENCE_WEIGHT = 0.25
TONE_WEIGHT = 0.15

ACCURACY_TIERS = [
    (90, "Excellent"),
    (75, "Good"),
    (60, "Fair"),
]
ACCURACY_DEFAULT = "Poor"

ENCOURAGEMENTS = [
    (90, {"title": "好犀利！(太棒了)", "message": "发音非常自然，继续保持。"}),
    (80, {"title": "唔错喔！(很好)", "message": "发音很标准，再接再厉！"}),
    (70, {"title": "过得去！(还可以)", "message": "有些地方需要练习，加油！"}),
    (60, {"title": "继续努力！(再努力)", "message": "多听多说，一定会有进步！"}),
]
ENCOURAGEMENT_DEFAULT = {"title": "重新嚟过！(再试试)", "message": "不要气馁，多练习几次！"}


def normalize_text(text):
    """Lowercase and strip everything except a-z, 0-9 and CJK ideographs."""
    return _NON_COMPARABLE_RE.sub("", (text or "").lower())


def edit_distance(a, b):
    """Levenshtein distance with unit insert/delete/substitute costs."""
    return Levenshtein.distance(a, b)


def round_half_up(value):
    # 6 places absorbs float noise such as 76.49999999999999
    return int(Decimal(str(round(value, 6))).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def pick_tier(score, ladder, default):
    for min_score, value in ladder:
        if score >= min_score:
            return value
    return default


def accuracy_tier(score):
    return pick_tier(score, ACCURACY_TIERS, ACCURACY_DEFAULT)


def encouragement_for(score):
    return dict(pick_tier(score, ENCOURAGEMENTS, ENCOURAGEMENT_DEFAULT))


def score_pronunciation(original_text, user_text, confidence, tone_floor=TONE_ACCURACY_FLOOR):
    """
    Score a spoken imitation against its reference text.

    Args:
        original_text: reference sentence, may contain punctuation or markdown
        user_text: transcript returned by the recognizer, may be empty
        confidence: recognizer confidence, nominally 0-1 (trusted as given)
        tone_floor: lower bound for the tone accuracy estimate

    Returns:
        dict with score, accuracy, fluency, toneAccuracy, similarity,
        confidence and encouragement {title, message}
    """
    normalized_original = normalize_text(original_text)
    normalized_user = normalize_text(user_text)

    max_len = max(len(normalized_original), len(normalized_user)) or 1
    distance = edit_distance(normalized_original, normalized_user)
    similarity = 1 - distance / max_len

    similarity_score = similarity * 100
    confidence_score = confidence * 100

    tone_accuracy = round_half_up(_clamp(similarity_score * 0.9 + confidence_score * 0.1, tone_floor, 100))

    score = round_half_up(
        similarity_score * SIMILARITY_WEIGHT
        + confidence_score * CONFIDENCE_WEIGHT
        + tone_accuracy * TONE_WEIGHT
    )
    score = _clamp(score, 0, 100)

    fluency = _clamp(round_half_up((score * 0.7 + confidence_score * 0.3) * 0.95 + 5), 0, 100)

    return {
        "score": score,
        "accuracy": accuracy_tier(score),
        "fluency": fluency,
        "toneAccuracy": _clamp(tone_accuracy, 0, 100),
        "similarity": _clamp(round_half_up(similarity_score), 0, 100),
        "confidence": _clamp(round_half_up(confidence_score), 0, 100),
        "encouragement": encouragement_for(score),
    }
