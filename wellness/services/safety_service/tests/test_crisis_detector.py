"""Tests for keyword crisis classification.

Crisis detection is safety-critical: every tier, the scoring caps and the
deterioration window are pinned down here.
"""
import logging
import pytest

from wellness.shared.models import CrisisLevel
from wellness.services.safety_service import crisis_detector as detector_module
from wellness.services.safety_service.config import DetectorConfig, TierRule
from wellness.services.safety_service.crisis_detector import (
    CrisisDetector,
    classify,
    get_crisis_detector,
)


@pytest.fixture
def detector():
    return CrisisDetector(location="pt-BR")


class TestCriticalMessages:
    """Self-harm language must always be CRITICAL."""

    def test_portuguese_critical_phrase(self):
        result = classify("Quero morrer")

        assert result.level == CrisisLevel.CRITICAL
        assert result.triggers == ["quero morrer"]
        assert result.confidence == 0.9

    def test_english_critical_phrase(self):
        result = classify("I want to kill myself")

        assert result.level == CrisisLevel.CRITICAL
        assert result.triggers == ["kill myself"]
        assert result.suggested_action == "Immediate crisis intervention required"

    def test_matching_is_case_insensitive(self):
        result = classify("SUICIDE")

        assert result.level == CrisisLevel.CRITICAL
        assert result.triggers == ["suicide"]

    def test_multiple_matches_capped_then_negative_bonus(self):
        """Two CRITICAL hits cap at 0.9; 'não' lifts it to 1.0."""
        result = classify("Não aguento mais, quero morrer")

        assert result.triggers == ["não aguento mais", "quero morrer"]
        assert result.confidence == 1.0

    def test_critical_outranks_lower_tiers(self):
        result = classify("I'm anxious and hopeless and want to die")

        assert result.level == CrisisLevel.CRITICAL
        assert result.triggers == ["want to die"]
        assert result.confidence == 0.9


class TestHighMessages:
    """Hopelessness and isolation language."""

    def test_single_high_keyword(self):
        result = classify("I feel hopeless")

        assert result.level == CrisisLevel.HIGH
        assert result.triggers == ["hopeless"]
        assert result.confidence == 0.6
        assert result.suggested_action == "Suggest professional help resources"

    def test_two_high_keywords_capped(self):
        result = classify("I feel hopeless and worthless")

        assert result.triggers == ["hopeless", "worthless"]
        assert result.confidence == 0.9

    def test_portuguese_high_with_negative_word(self):
        result = classify("Me sinto sozinho, ninguém se importa")

        assert result.level == CrisisLevel.HIGH
        assert result.triggers == ["ninguém se importa", "sozinho"]
        assert result.confidence == 1.0

    def test_substring_match(self):
        """Keywords match as substrings, not whole words."""
        result = classify("a standalone sentence")

        assert result.level == CrisisLevel.HIGH
        assert result.triggers == ["alone"]


class TestMediumMessages:
    """Emotional difficulty language."""

    def test_single_medium_keyword(self):
        result = classify("I'm so anxious today")

        assert result.level == CrisisLevel.MEDIUM
        assert result.triggers == ["anxious"]
        assert result.confidence == 0.4

    def test_medium_ceiling(self):
        result = classify("anxious and depressed")

        assert result.triggers == ["depressed", "anxious"]
        assert result.confidence == 0.7
        assert result.suggested_action == "Offer coping strategies and support"


class TestLowMessages:
    """Messages without crisis language."""

    def test_normal_message(self):
        result = classify("I had a good day")

        assert result.level == CrisisLevel.LOW
        assert result.triggers == []
        assert result.confidence == 0.0
        assert result.suggested_action == "Continue monitoring"

    def test_empty_message(self):
        result = classify("")

        assert result.level == CrisisLevel.LOW
        assert result.confidence == 0.0

    def test_negative_words_raise_confidence_only(self):
        result = classify("I never know, nothing works")

        assert result.level == CrisisLevel.LOW
        assert result.confidence == 0.2

    def test_to_dict(self):
        data = classify("I feel hopeless").to_dict()

        assert data == {
            "level": "HIGH",
            "confidence": 0.6,
            "triggers": ["hopeless"],
            "suggestedAction": "Suggest professional help resources",
        }


class TestCustomRules:
    """classify() honours injected rules and configuration."""

    def test_no_rules_is_always_low(self):
        assert classify("quero morrer", rules=()).level == CrisisLevel.LOW

    def test_custom_tier(self):
        rules = (TierRule(CrisisLevel.MEDIUM, ("exam",), increment=0.3, ceiling=0.5),)

        result = classify("exam exam", rules=rules)

        assert result.level == CrisisLevel.MEDIUM
        assert result.confidence == 0.3

    def test_custom_negative_bonus(self):
        config = DetectorConfig(negative_word_bonus=0.25)

        assert classify("never", config=config).confidence == 0.25


class TestDetectorHistory:
    """CrisisDetector records analyzed messages."""

    def test_analyze_records_history(self, detector):
        detector.analyze_message("hello")
        detector.analyze_message("quero morrer")

        levels = [a.level for a in detector.get_detection_history()]
        assert levels == [CrisisLevel.LOW, CrisisLevel.CRITICAL]
        assert detector.last_detection_time is not None

    def test_classify_does_not_record(self, detector):
        detector.classify("quero morrer")

        assert detector.get_detection_history() == []
        assert detector.last_detection_time is None

    def test_history_is_bounded(self):
        detector = CrisisDetector(config=DetectorConfig(history_size=3))

        for _ in range(5):
            detector.analyze_message("hello")

        assert len(detector.get_detection_history()) == 3

    def test_clear_history(self, detector):
        detector.analyze_message("hopeless")
        detector.clear_history()

        assert detector.get_detection_history() == []

    def test_critical_is_logged(self, detector, caplog):
        with caplog.at_level(logging.WARNING):
            detector.analyze_message("quero morrer")
            detector.analyze_message("hopeless")

        messages = [(r.levelno, r.getMessage()) for r in caplog.records]
        assert (logging.CRITICAL, "CRISIS_DETECTED") in messages
        assert (logging.WARNING, "CRISIS_RISK_ELEVATED") in messages


class TestDeterioration:
    """Two CRITICAL or three HIGH within the last five classifications."""

    def test_empty_history_not_deteriorating(self, detector):
        assert detector.check_deterioration_pattern() is False

    def test_two_critical(self, detector):
        detector.analyze_message("quero morrer")
        detector.analyze_message("suicide")

        assert detector.check_deterioration_pattern() is True

    def test_three_high(self, detector):
        for text in ("hopeless", "worthless", "give up"):
            detector.analyze_message(text)

        assert detector.check_deterioration_pattern() is True

    def test_mixed_below_thresholds(self, detector):
        for text in ("hopeless", "worthless", "suicide"):
            detector.analyze_message(text)

        assert detector.check_deterioration_pattern() is False

    def test_old_entries_fall_out_of_window(self, detector):
        detector.analyze_message("quero morrer")
        detector.analyze_message("suicide")
        for _ in range(4):
            detector.analyze_message("hello")

        assert detector.check_deterioration_pattern() is False


class TestResources:
    """Contacts and messages follow the detector's location."""

    def test_brazil_contacts(self, detector):
        contacts = detector.get_emergency_contacts()

        assert [c.phone for c in contacts][:2] == ["188", "192"]
        assert len(contacts) == 3

    def test_us_contacts(self):
        contacts = CrisisDetector(location="en-US").get_emergency_contacts()

        assert contacts[0].phone == "988"
        assert len(contacts) == 3

    def test_other_locale_gets_all_contacts(self):
        assert len(CrisisDetector(location="fr-FR").get_emergency_contacts()) == 6

    def test_portuguese_message(self, detector):
        assert "Sua vida tem valor" in detector.get_crisis_message(CrisisLevel.CRITICAL)

    def test_english_message(self):
        message = CrisisDetector(location="en-US").get_crisis_message(CrisisLevel.CRITICAL)

        assert "Your life has value" in message


class TestSingleton:

    def test_get_crisis_detector_reuses_instance(self, monkeypatch):
        monkeypatch.setattr(detector_module, "_crisis_detector_instance", None)

        first = get_crisis_detector("en-US")
        second = get_crisis_detector("pt-BR")

        assert first is second
        assert first.location == "en-US"
