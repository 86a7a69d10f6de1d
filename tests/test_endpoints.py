"""
HTTP endpoint tests through the Flask test client, collaborators patched out
"""
import io
import base64
from datetime import datetime, timedelta, timezone
from unittest.mock import patch
from photocanto import create_app
from photocanto.config import config
from photocanto.services.ai_service import ai_service, AIServiceError
from photocanto.services.speech_service import speech_service, SpeechServiceError
from photocanto.services.data_service import data_service

STORY = {
    "mandarin": "我在街边喝奶茶。",
    "cantonese": "我喺街边饮奶茶。",
    "words": [{"char": "喺", "pinyin": "xì", "jyutping": "hai2"}],
}


def _image(name="photo.jpg", payload=b"\xff\xd8\xffjpeg"):
    return (io.BytesIO(payload), name)


def _audio(name="clip.mp3", payload=b"ID3audio"):
    return (io.BytesIO(payload), name)


class TestHealth:

    def test_health(self, client):
        resp = client.get("/health")
        body = resp.get_json()
        assert resp.status_code == 200
        assert body["success"] is True
        assert body["storage"] == "memory"

    def test_unknown_route_is_json(self, client):
        resp = client.get("/nope")
        assert resp.status_code == 404
        assert resp.get_json() == {"success": False, "error": "Not found"}

    def test_wrong_method_is_json(self, client):
        resp = client.get("/api/evaluate")
        assert resp.status_code == 405
        assert resp.get_json()["success"] is False


class TestGenerate:

    def test_generate(self, client):
        with patch.object(ai_service, "create_story", return_value=STORY) as create_story, \
                patch.object(speech_service, "synthesize", return_value=b"ID3mp3") as synthesize:
            resp = client.post("/api/generate", data={"image": _image(), "level": "advanced"},
                               content_type="multipart/form-data")

        body = resp.get_json()
        assert resp.status_code == 200
        assert body["success"] is True
        assert body["data"]["text"] == "我喺街边饮奶茶。"
        assert body["data"]["mandarin"] == "我在街边喝奶茶。"
        assert body["data"]["words"] == STORY["words"]
        assert body["data"]["audioFormat"] == "mp3"
        assert body["data"]["audioUrl"] == "data:audio/mp3;base64," + base64.b64encode(b"ID3mp3").decode()
        assert "recordId" not in body["data"]
        assert create_story.call_args.kwargs["level"] == "advanced"
        synthesize.assert_called_once_with("我喺街边饮奶茶。")

    def test_generate_logs_history_for_user(self, client):
        with patch.object(ai_service, "create_story", return_value=STORY), \
                patch.object(speech_service, "synthesize", return_value=b"ID3mp3"):
            resp = client.post("/api/generate", data={"image": _image(), "userId": "u1"},
                               content_type="multipart/form-data")

        data = resp.get_json()["data"]
        assert [a["id"] for a in data["newAchievements"]] == ["first_story"]
        history = client.get("/api/users/u1/history").get_json()["data"]
        assert [r["id"] for r in history] == [data["recordId"]]
        assert history[0]["type"] == "generation"

    def test_missing_image(self, client):
        with patch.object(ai_service, "create_story") as create_story:
            resp = client.post("/api/generate", data={"level": "beginner"}, content_type="multipart/form-data")
        assert resp.status_code == 400
        assert resp.get_json()["success"] is False
        create_story.assert_not_called()

    def test_wrong_image_type(self, client):
        resp = client.post("/api/generate", data={"image": _image("notes.txt", b"hello")},
                           content_type="multipart/form-data")
        assert resp.status_code == 400
        assert "JPG and PNG" in resp.get_json()["error"]

    def test_upstream_failure(self, client):
        with patch.object(ai_service, "create_story", side_effect=AIServiceError("both paths failed")):
            resp = client.post("/api/generate", data={"image": _image()}, content_type="multipart/form-data")
        assert resp.status_code == 500
        assert resp.get_json() == {"success": False, "error": "both paths failed"}

    def test_tts_failure(self, client):
        with patch.object(ai_service, "create_story", return_value=STORY), \
                patch.object(speech_service, "synthesize", side_effect=SpeechServiceError("tts down")):
            resp = client.post("/api/generate", data={"image": _image()}, content_type="multipart/form-data")
        assert resp.status_code == 500
        assert resp.get_json()["error"] == "tts down"

    def test_file_too_large(self, tmp_path):
        app = create_app({"TESTING": True, "LOG_DIR": str(tmp_path), "MAX_CONTENT_LENGTH": 1024})
        resp = app.test_client().post("/api/generate", data={"image": _image(payload=b"x" * 4096)},
                                      content_type="multipart/form-data")
        assert resp.status_code == 400
        assert "File size exceeds" in resp.get_json()["error"]


class TestEvaluate:

    def test_evaluate(self, client):
        recognized = {"text": "我想食面", "confidence": 0.9}
        with patch.object(speech_service, "recognize", return_value=recognized):
            resp = client.post("/api/evaluate", data={"audio": _audio(), "originalText": "我想食饭"},
                               content_type="multipart/form-data")

        body = resp.get_json()
        assert resp.status_code == 200
        assert body["success"] is True
        assert body["data"] == {
            "originalText": "我想食饭",
            "userText": "我想食面",
            "score": 79,
            "accuracy": "Good",
            "fluency": 83,
            "toneAccuracy": 77,
            "similarity": 75,
            "confidence": 90,
            "encouragement": {"title": "过得去！(还可以)", "message": "有些地方需要练习，加油！"},
        }

    def test_evaluate_with_user_updates_state(self, client):
        recognized = {"text": "呢度喺街边饮奶茶", "confidence": 0.92}
        with patch.object(speech_service, "recognize", return_value=recognized):
            resp = client.post("/api/evaluate",
                               data={"audio": _audio(), "originalText": "呢度喺街边饮奶茶。", "userId": "u1"},
                               content_type="multipart/form-data")

        data = resp.get_json()["data"]
        assert data["score"] == 98
        assert {a["id"] for a in data["newAchievements"]} == {"first_practice", "excellent_score"}

        record = client.get(f"/api/users/u1/history/{data['recordId']}").get_json()["data"]
        assert record["score"] == 98
        assert record["originalText"] == "呢度喺街边饮奶茶。"

        stats = client.get("/api/users/u1/stats").get_json()["data"]
        assert stats["totalEvaluations"] == 1
        assert stats["bestScore"] == 98
        assert "totalScore" not in stats

    def test_silence(self, client):
        with patch.object(speech_service, "recognize", return_value={"text": "", "confidence": 0.0}):
            resp = client.post("/api/evaluate", data={"audio": _audio(), "originalText": "你好"},
                               content_type="multipart/form-data")
        data = resp.get_json()["data"]
        assert data["similarity"] == 0
        assert data["accuracy"] == "Poor"

    def test_missing_original_text(self, client):
        with patch.object(speech_service, "recognize") as recognize:
            resp = client.post("/api/evaluate", data={"audio": _audio()}, content_type="multipart/form-data")
        assert resp.status_code == 400
        assert resp.get_json()["error"] == "Missing originalText in request body"
        recognize.assert_not_called()

    def test_original_text_too_long(self, client):
        too_long = "我" * (config.MAX_REFERENCE_LENGTH + 1)
        with patch.object(speech_service, "recognize") as recognize:
            resp = client.post("/api/evaluate", data={"audio": _audio(), "originalText": too_long},
                               content_type="multipart/form-data")
        assert resp.status_code == 400
        assert "exceeds" in resp.get_json()["error"]
        recognize.assert_not_called()

    def test_missing_audio(self, client):
        resp = client.post("/api/evaluate", data={"originalText": "你好"}, content_type="multipart/form-data")
        assert resp.status_code == 400

    def test_wrong_audio_type(self, client):
        resp = client.post("/api/evaluate", data={"audio": _audio("clip.ogg"), "originalText": "你好"},
                           content_type="multipart/form-data")
        assert resp.status_code == 400
        assert "MP3, WAV, M4A, and AAC" in resp.get_json()["error"]

    def test_recognizer_failure(self, client):
        with patch.object(speech_service, "recognize", side_effect=SpeechServiceError("Failed to recognize speech: 401")):
            resp = client.post("/api/evaluate", data={"audio": _audio(), "originalText": "你好"},
                               content_type="multipart/form-data")
        assert resp.status_code == 500
        assert resp.get_json() == {"success": False, "error": "Failed to recognize speech: 401"}


class TestUserEndpoints:

    def test_profile_default_update_delete(self, client):
        assert client.get("/api/users/u1/profile").get_json()["data"]["nickname"] == "学员"

        resp = client.put("/api/users/u1/profile", json={"nickname": "阿明", "level": "intermediate"})
        assert resp.status_code == 200
        assert resp.get_json()["data"]["nickname"] == "阿明"
        assert client.get("/api/users/u1/profile").get_json()["data"]["level"] == "intermediate"

        assert client.delete("/api/users/u1/profile").status_code == 200
        assert client.delete("/api/users/u1/profile").status_code == 404

    def test_profile_validation(self, client):
        assert client.put("/api/users/u1/profile", data="nope", content_type="text/plain").status_code == 400
        assert client.put("/api/users/u1/profile", json={"dailyGoal": "many"}).status_code == 400

    def test_history_filters_and_delete(self, client):
        data_service.record_generation("u1", STORY)
        evaluation, _ = data_service.record_evaluation("u1", "你好", "你好", {"score": 90})

        assert client.get("/api/users/u1/history").get_json()["count"] == 2
        only_eval = client.get("/api/users/u1/history?type=evaluation").get_json()["data"]
        assert [r["id"] for r in only_eval] == [evaluation["id"]]
        assert client.get("/api/users/u1/history?type=quiz").status_code == 400
        assert client.get("/api/users/u1/history?limit=abc").status_code == 400
        assert client.get("/api/users/u1/history?limit=1").get_json()["count"] == 1

        assert client.delete(f"/api/users/u2/history/{evaluation['id']}").status_code == 404
        assert client.delete(f"/api/users/u1/history/{evaluation['id']}").status_code == 200
        assert client.get(f"/api/users/u1/history/{evaluation['id']}").status_code == 404

    def test_achievements(self, client):
        data_service.record_evaluation("u1", "你好", "你好", {"score": 100})
        body = client.get("/api/users/u1/achievements").get_json()["data"]
        assert {a["id"] for a in body["unlocked"]} == {"first_practice", "excellent_score", "perfect_score"}
        catalogue = {a["id"]: a["unlocked"] for a in body["catalogue"]}
        assert catalogue["perfect_score"] is True
        assert catalogue["streak_7"] is False


class TestShareEndpoints:

    def test_share_flow(self, client):
        record, _ = data_service.record_evaluation("u1", "你好", "你好", {"score": 95})

        resp = client.post("/api/share", json={"userId": "u1", "recordId": record["id"]})
        assert resp.status_code == 201
        share = resp.get_json()["data"]

        fetched = client.get(f"/api/share/{share['shareId']}").get_json()["data"]
        assert fetched["record"]["score"] == 95

    def test_share_validation_and_missing(self, client):
        assert client.post("/api/share", json={"userId": "u1"}).status_code == 400
        assert client.post("/api/share", json={"userId": "u1", "recordId": "missing"}).status_code == 404
        assert client.get("/api/share/unknown").status_code == 404

    def test_expired_share(self, client):
        record, _ = data_service.record_evaluation("u1", "你好", "你好", {"score": 95})
        share = data_service.create_share("u1", record["id"], now=datetime.now(timezone.utc) - timedelta(days=31))

        resp = client.get(f"/api/share/{share['shareId']}")

        assert resp.status_code == 404
        assert "expired" in resp.get_json()["error"]
