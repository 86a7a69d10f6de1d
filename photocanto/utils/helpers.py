import json
import uuid
from datetime import datetime, date, timedelta, timezone


def _create_id():
    return uuid.uuid4().hex[:12]


def _clamp(v, lo, hi):
    return max(lo, min(hi, v))


def _utc_now():
    return datetime.now(timezone.utc)


def _iso(dt):
    # fixed width so stored timestamps sort lexicographically
    return dt.isoformat(timespec="microseconds")


def _parse_iso(s):
    try:
        dt = datetime.fromisoformat(str(s or "").replace("Z", "+00:00"))
    except ValueError:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def _is_next_day(previous_key, current_key):
    try:
        prev = date.fromisoformat(previous_key)
        cur = date.fromisoformat(current_key)
    except (TypeError, ValueError):
        return False
    return cur - prev == timedelta(days=1)


def _file_extension(filename, mimetype=None):
    """Lowercase extension taken from the filename, else from the mimetype subtype."""
    name = (filename or "").strip()
    if "." in name:
        return name.rsplit(".", 1)[1].lower()
    if mimetype and "/" in mimetype:
        return mimetype.split("/", 1)[1].split(";", 1)[0].strip().lower()
    return ""


def _allowed_file(file_storage, allowed_types):
    """
    Check an uploaded file against an allow-list of extensions.

    Accepts the file when either its filename extension or its mimetype
    subtype is allowed (mobile clients often send blobs without a name).
    """
    ext = _file_extension(file_storage.filename)
    subtype = _file_extension(None, file_storage.mimetype)
    if subtype == "mpeg":
        subtype = "mp3"
    return ext in allowed_types or subtype in allowed_types


def _extract_json(content, opening="{", closing="}"):
    """Parse the JSON payload out of a model reply that may carry fences or chatter."""
    content = (content or "").replace("```json", "").replace("```", "").strip()
    if opening in content and closing in content:
        content = content[content.find(opening):content.rfind(closing) + 1]
    return json.loads(content)


def _normalize_words(words):
    """Keep well-formed {char, pinyin, jyutping} entries, dropping duplicates."""
    if not isinstance(words, list):
        return []
    normalized = []
    seen = set()
    for w in words:
        if not isinstance(w, dict):
            continue
        char = str(w.get("char") or w.get("word") or "").strip()
        if not char or char in seen:
            continue
        seen.add(char)
        normalized.append({
            "char": char,
            "pinyin": str(w.get("pinyin") or "").strip(),
            "jyutping": str(w.get("jyutping") or "").strip(),
        })
    return normalized
