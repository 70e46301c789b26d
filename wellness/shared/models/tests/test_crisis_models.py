"""Tests for crisis domain models."""
import pytest

from wellness.shared.models import (
    CrisisAssessment,
    CrisisLevel,
    ContactType,
    EmergencyContact,
)


class TestCrisisLevel:
    def test_severity_ordering(self):
        levels = sorted(CrisisLevel, key=lambda level: level.severity)
        assert levels == [
            CrisisLevel.LOW,
            CrisisLevel.MEDIUM,
            CrisisLevel.HIGH,
            CrisisLevel.CRITICAL,
        ]

    def test_values_match_names(self):
        for level in CrisisLevel:
            assert level.value == level.name

    def test_is_elevated(self):
        assert CrisisLevel.CRITICAL.is_elevated
        assert CrisisLevel.HIGH.is_elevated
        assert not CrisisLevel.MEDIUM.is_elevated
        assert not CrisisLevel.LOW.is_elevated


class TestCrisisAssessment:
    def test_confidence_out_of_range_rejected(self):
        with pytest.raises(ValueError):
            CrisisAssessment(level=CrisisLevel.LOW, confidence=1.5)

    def test_to_dict_uses_api_keys(self):
        assessment = CrisisAssessment(
            level=CrisisLevel.HIGH,
            confidence=0.6,
            triggers=["hopeless"],
            suggested_action="Suggest professional help resources",
        )

        data = assessment.to_dict()

        assert data == {
            "level": "HIGH",
            "confidence": 0.6,
            "triggers": ["hopeless"],
            "suggestedAction": "Suggest professional help resources",
        }

    def test_assessment_is_immutable(self):
        assessment = CrisisAssessment(level=CrisisLevel.LOW, confidence=0.0)

        with pytest.raises(Exception):  # FrozenInstanceError
            assessment.level = CrisisLevel.CRITICAL


class TestEmergencyContact:
    def test_to_dict(self):
        contact = EmergencyContact(
            name="CVV - Centro de Valorização da Vida",
            phone="188",
            available="24 horas",
            type=ContactType.HOTLINE,
        )

        assert contact.to_dict()["type"] == "hotline"
        assert contact.to_dict()["phone"] == "188"
