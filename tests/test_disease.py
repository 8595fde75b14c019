import asyncio
import base64
import json
from unittest.mock import AsyncMock, MagicMock

import pytest

from cropgenius.core.cache import ResultCache
from cropgenius.core.errors import InvalidFieldDataError, ValidationError
from cropgenius.services.disease_service import (
    DiseaseService,
    cache_key,
    infer_disease,
    sanitize_diagnosis,
    severity_from_score,
    transform_plantnet,
    validate_image,
)

IMAGE = base64.b64encode(b"\xff\xd8\xff" + b"leaf" * 600).decode()

GEMINI_ANSWER = json.dumps({
    "disease_name": "Maize Lethal Necrosis",
    "scientific_name": "MCMV + SCMV",
    "confidence": 91,
    "severity": "high",
    "affected_area_percentage": 35,
    "symptoms": ["Chlorotic mottling"],
    "immediate_actions": ["Rogue infected plants"],
    "economic_impact": {"yield_loss_percentage": 40, "revenue_loss_usd": 120, "treatment_cost_usd": 10},
    "spread_risk": "high",
})


def _service(fake_db, answer=GEMINI_ANSWER, plantnet=None):
    gemini = MagicMock()
    gemini.generate = AsyncMock(return_value=(answer, {"totalTokenCount": 900}))
    return DiseaseService(db=fake_db, gemini=gemini, plantnet=plantnet or MagicMock(), cache=ResultCache(ttl=3600))


class TestImageChecks:
    def test_data_url_prefix_is_stripped(self):
        assert validate_image(f"data:image/jpeg;base64,{IMAGE}") == IMAGE

    def test_rejects_bad_images(self):
        with pytest.raises(ValidationError):
            validate_image("")
        with pytest.raises(ValidationError):
            validate_image("not base64 at all!")
        with pytest.raises(ValidationError):
            validate_image(base64.b64encode(b"tiny").decode())

    def test_cache_key_rounds_location(self):
        assert cache_key(IMAGE, "Maize", -1.29214, 36.82191) == cache_key(IMAGE, "maize", -1.2899, 36.8201)


class TestDiagnosisCleanup:
    def test_sanitize_clamps_and_fills_defaults(self):
        diagnosis = sanitize_diagnosis({
            "confidence": 140,
            "severity": "catastrophic",
            "affected_area_percentage": -5,
            "symptoms": [],
            "economic_impact": {"revenue_loss_usd": -20},
        })
        assert diagnosis["disease_name"] == "Unknown Disease"
        assert diagnosis["confidence"] == 100
        assert diagnosis["severity"] == "medium"
        assert diagnosis["affected_area_percentage"] == 0
        assert diagnosis["symptoms"] == ["Visual inspection required"]
        assert diagnosis["economic_impact"]["revenue_loss_usd"] == 0.0
        assert diagnosis["spread_risk"] == "medium"


class TestDiagnose:
    def test_diagnosis_is_cached_and_saved(self, fake_db):
        service = _service(fake_db)

        first = asyncio.run(service.diagnose(IMAGE, "maize", -1.29, 36.82, user_id="user-1"))
        second = asyncio.run(service.diagnose(IMAGE, "maize", -1.29, 36.82, user_id="user-1"))

        assert first["disease_name"] == "Maize Lethal Necrosis"
        assert first["cached"] is False
        assert first["crop_type"] == "maize"
        assert second["cached"] is True
        assert service.gemini.generate.await_count == 1
        assert service.daily_usage == 1

        saved = fake_db.payloads("crop_scans", "insert")
        assert len(saved) == 1
        assert saved[0]["severity"] == "high"

    def test_unparseable_answer_gives_general_assessment(self, fake_db):
        service = _service(fake_db, answer="The plant looks stressed.")
        result = asyncio.run(service.diagnose(IMAGE, "beans", 0.5, 34.1))
        assert result["disease_name"] == "General Plant Health Assessment"
        assert result["confidence"] == 60

    def test_crop_type_required(self, fake_db):
        with pytest.raises(InvalidFieldDataError):
            asyncio.run(_service(fake_db).diagnose(IMAGE, "", 0, 0))

    def test_cache_status_reports_usage(self, fake_db):
        service = _service(fake_db)
        asyncio.run(service.diagnose(IMAGE, "maize", -1.29, 36.82))
        status = service.cache_status()
        assert status["size"] == 1
        assert status["daily_usage"] == 1


class TestPlantNet:
    RESPONSE = {"results": [
        {"score": 0.87, "species": {
            "scientificNameWithoutAuthor": "Zea mays",
            "commonNames": ["Maize", "Corn"],
            "family": {"scientificNameWithoutAuthor": "Poaceae"},
            "genus": {"scientificNameWithoutAuthor": "Zea"},
        }},
        {"score": 0.42, "species": {"scientificNameWithoutAuthor": "Puccinia sorghi"}},
    ]}

    def test_transform(self):
        results = transform_plantnet(self.RESPONSE)
        assert results[0]["disease_name"] == "Healthy maize"
        assert results[0]["confidence"] == 87
        assert results[0]["severity"] == "high"
        assert results[0]["treatment"].startswith("Plant appears healthy")
        assert results[1]["disease_name"] == "Rust disease"
        assert results[1]["family"] == "Unknown"
        assert results[1]["severity"] == "low"

    def test_helpers(self):
        assert infer_disease("Fusarium oxysporum") == "Fusarium wilt"
        assert infer_disease("Mystery plant") == "General plant health issue"
        assert severity_from_score(0.6) == "medium"

    def test_identify_plant(self, fake_db):
        plantnet = MagicMock()
        plantnet.identify = AsyncMock(return_value=self.RESPONSE)
        service = _service(fake_db, plantnet=plantnet)

        results = asyncio.run(service.identify_plant(IMAGE))

        plantnet.identify.assert_awaited_once_with(IMAGE, organ="leaf")
        assert len(results) == 2

    def test_history(self, fake_db):
        fake_db.queue("crop_scans", [{"id": "scan-1"}])
        assert _service(fake_db).history("user-1") == [{"id": "scan-1"}]
