import logging
import threading
from datetime import timedelta, timezone
from photocanto.config import config
from photocanto.services.storage import create_backend
from photocanto.utils.helpers import _create_id, _utc_now, _iso, _parse_iso, _is_next_day

logger = logging.getLogger(__name__)

RECORD_TYPES = ("generation", "evaluation")

PROFILE_FIELDS = ("nickname", "level", "dialect", "dailyGoal", "avatar")

# (id, title, description, stat, threshold)
ACHIEVEMENT_RULES = [
    ("first_story", "第一张相", "用相片生成第一句粤语", "totalGenerations", 1),
    ("storyteller", "讲古佬", "生成十句粤语", "totalGenerations", 10),
    ("first_practice", "开口讲", "完成第一次跟读练习", "totalEvaluations", 1),
    ("ten_practices", "勤力学生", "完成十次跟读练习", "totalEvaluations", 10),
    ("fifty_practices", "粤语达人", "完成五十次跟读练习", "totalEvaluations", 50),
    ("excellent_score", "好犀利", "单次练习得分达到90分", "bestScore", 90),
    ("perfect_score", "满分", "单次练习得分达到100分", "bestScore", 100),
    ("streak_3", "三日不断", "连续三日练习", "streakDays", 3),
    ("streak_7", "一星期坚持", "连续七日练习", "streakDays", 7),
]


def _as_utc(now):
    if now is None:
        return _utc_now()
    if now.tzinfo is None:
        return now.replace(tzinfo=timezone.utc)
    return now.astimezone(timezone.utc)


class DataService:
    def __init__(self, backend=None):
        self._backend = backend
        self._backend_lock = threading.Lock()
        # serializes read-modify-write of per-user statistics
        self._stats_lock = threading.Lock()

    @property
    def backend(self):
        with self._backend_lock:
            if self._backend is None:
                self._backend = create_backend(config.DATABASE_PATH)
            return self._backend

    def use_backend(self, backend):
        with self._backend_lock:
            self._backend = backend

    # Profile
    def default_profile(self, user_id):
        return {
            "userId": user_id,
            "nickname": "学员",
            "level": "beginner",
            "dialect": "cantonese",
            "dailyGoal": 5,
            "avatar": None,
            "createdAt": None,
            "updatedAt": None,
        }

    def load_profile(self, user_id):
        return self.backend.get_profile(user_id) or self.default_profile(user_id)

    def update_profile(self, user_id, changes, now=None):
        now = _as_utc(now)
        profile = self.load_profile(user_id)
        for key in PROFILE_FIELDS:
            if key in changes:
                profile[key] = changes[key]
        if "dailyGoal" in changes:
            try:
                profile["dailyGoal"] = max(1, int(changes["dailyGoal"]))
            except (TypeError, ValueError):
                raise ValueError("dailyGoal must be an integer")
        profile["userId"] = user_id
        profile["createdAt"] = profile.get("createdAt") or _iso(now)
        profile["updatedAt"] = _iso(now)
        self.backend.save_profile(user_id, profile)
        return profile

    def delete_profile(self, user_id):
        return self.backend.delete_profile(user_id)

    # Learning records
    def add_record(self, user_id, record_type, payload, now=None):
        if record_type not in RECORD_TYPES:
            raise ValueError(f"unknown record type: {record_type}")
        now = _as_utc(now)
        record = dict(payload)
        record.update({
            "id": _create_id(),
            "userId": user_id,
            "type": record_type,
            "createdAt": _iso(now),
        })
        self.backend.add_record(record)
        return record

    def load_history(self, user_id, limit=50, record_type=None):
        return self.backend.list_records(user_id, limit=limit, record_type=record_type)

    def get_record(self, user_id, record_id):
        record = self.backend.get_record(record_id)
        if record is None or record.get("userId") != user_id:
            return None
        return record

    def delete_record(self, user_id, record_id):
        return self.backend.delete_record(user_id, record_id)

    # Statistics
    def default_stats(self, user_id):
        return {
            "userId": user_id,
            "totalGenerations": 0,
            "totalEvaluations": 0,
            "totalScore": 0,
            "averageScore": 0,
            "bestScore": 0,
            "streakDays": 0,
            "lastActiveDate": None,
        }

    def load_stats(self, user_id):
        return self.backend.get_stats(user_id) or self.default_stats(user_id)

    def _bump_stats(self, user_id, now, score=None):
        with self._stats_lock:
            stats = self.load_stats(user_id)
            if score is None:
                stats["totalGenerations"] = int(stats.get("totalGenerations", 0)) + 1
            else:
                stats["totalEvaluations"] = int(stats.get("totalEvaluations", 0)) + 1
                stats["totalScore"] = int(stats.get("totalScore", 0)) + int(score)
                stats["averageScore"] = round(stats["totalScore"] / stats["totalEvaluations"], 1)
                stats["bestScore"] = max(int(stats.get("bestScore", 0)), int(score))

            today = now.date().isoformat()
            last = stats.get("lastActiveDate")
            if last != today:
                if last and _is_next_day(last, today):
                    stats["streakDays"] = int(stats.get("streakDays", 0)) + 1
                else:
                    stats["streakDays"] = 1
                stats["lastActiveDate"] = today
            self.backend.save_stats(user_id, stats)
            return stats

    # Achievements
    def achievement_catalogue(self, user_id):
        unlocked = {a["id"]: a for a in self.backend.list_achievements(user_id)}
        catalogue = []
        for ach_id, title, description, stat, threshold in ACHIEVEMENT_RULES:
            held = unlocked.get(ach_id)
            catalogue.append({
                "id": ach_id,
                "title": title,
                "description": description,
                "unlocked": held is not None,
                "unlockedAt": held.get("unlockedAt") if held else None,
            })
        return catalogue

    def load_achievements(self, user_id):
        return self.backend.list_achievements(user_id)

    def _unlock_achievements(self, user_id, stats, now):
        newly = []
        for ach_id, title, description, stat, threshold in ACHIEVEMENT_RULES:
            if int(stats.get(stat) or 0) < threshold:
                continue
            achievement = {
                "id": ach_id,
                "title": title,
                "description": description,
                "unlockedAt": _iso(now),
            }
            if self.backend.add_achievement(user_id, achievement):
                logger.info("User %s unlocked achievement %s", user_id, ach_id)
                newly.append(achievement)
        return newly

    # Activity
    def record_generation(self, user_id, story, now=None):
        now = _as_utc(now)
        record = self.add_record(user_id, "generation", {
            "mandarin": story.get("mandarin", ""),
            "cantonese": story.get("cantonese", ""),
            "words": story.get("words", []),
        }, now=now)
        stats = self._bump_stats(user_id, now)
        return record, self._unlock_achievements(user_id, stats, now)

    def record_evaluation(self, user_id, original_text, user_text, report, now=None):
        now = _as_utc(now)
        payload = {"originalText": original_text, "userText": user_text}
        payload.update(report)
        record = self.add_record(user_id, "evaluation", payload, now=now)
        stats = self._bump_stats(user_id, now, score=report.get("score", 0))
        return record, self._unlock_achievements(user_id, stats, now)

    # Share links
    def create_share(self, user_id, record_id, now=None):
        """Returns None when the record does not exist for this user."""
        now = _as_utc(now)
        record = self.get_record(user_id, record_id)
        if record is None:
            return None
        share = {
            "shareId": _create_id(),
            "userId": user_id,
            "recordId": record_id,
            "record": record,
            "createdAt": _iso(now),
            "expiresAt": _iso(now + timedelta(days=config.SHARE_TTL_DAYS)),
        }
        self.backend.save_share(share)
        return share

    def load_share(self, share_id, now=None):
        """Returns None for unknown or expired shares."""
        now = _as_utc(now)
        share = self.backend.get_share(share_id)
        if share is None:
            return None
        expires_at = _parse_iso(share.get("expiresAt"))
        if expires_at is None or expires_at <= now:
            return None
        return share

    def purge_expired_shares(self, now=None):
        now = _as_utc(now)
        removed = self.backend.delete_shares_expiring_before(_iso(now))
        if removed:
            logger.info("Purged %d expired share records", removed)
        return removed


data_service = DataService()
