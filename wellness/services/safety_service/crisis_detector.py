"""Keyword crisis detector.

Classification is a pure function of the message text and the static
keyword tables:

- Lower-case the message and test substring membership tier by tier,
  CRITICAL > HIGH > MEDIUM. The first tier with a match sets the level
  and all of that tier's matches become triggers.
- Each match adds the tier increment to confidence, capped at the tier
  ceiling. Each negative word present then adds a flat bonus, capped at 1.0.

CrisisDetector wraps classify() with a rolling in-memory history used by
the deterioration check.
"""
import logging
import threading
from collections import deque
from datetime import datetime
from typing import Deque, List, Optional, Sequence

from wellness.shared.models import CrisisAssessment, CrisisLevel, EmergencyContact
from .config import DEFAULT_TIER_RULES, NEGATIVE_WORDS, DetectorConfig, TierRule
from .resources import SUGGESTED_ACTIONS, contacts_for_location, crisis_message

logger = logging.getLogger(__name__)


def classify(
    message: str,
    rules: Optional[Sequence[TierRule]] = None,
    config: Optional[DetectorConfig] = None,
) -> CrisisAssessment:
    """Classify a message into a crisis level.

    Never raises for string input; an empty message is LOW with zero
    confidence.

    Args:
        message: Raw message text
        rules: Tier rules in priority order (defaults to DEFAULT_TIER_RULES)
        config: Scoring configuration

    Returns:
        CrisisAssessment with level, confidence and triggers
    """
    rules = DEFAULT_TIER_RULES if rules is None else rules
    config = config or DetectorConfig()
    lower_message = message.lower()

    level = CrisisLevel.LOW
    confidence = 0.0
    triggers: List[str] = []

    for rule in rules:
        matches = [keyword for keyword in rule.keywords if keyword in lower_message]
        if not matches:
            continue
        level = rule.level
        triggers = matches
        for _ in matches:
            confidence = min(confidence + rule.increment, rule.ceiling)
        break

    negative_count = sum(1 for word in NEGATIVE_WORDS if word in lower_message)
    confidence = min(confidence + negative_count * config.negative_word_bonus, 1.0)

    return CrisisAssessment(
        level=level,
        confidence=round(confidence, 4),
        triggers=triggers,
        suggested_action=SUGGESTED_ACTIONS[level],
    )


class CrisisDetector:
    """Stateful detector: classifies messages and tracks recent history.

    One detector per conversation keeps deterioration checks scoped to
    that conversation.
    """

    def __init__(
        self,
        location: str = "pt-BR",
        config: Optional[DetectorConfig] = None,
        rules: Optional[Sequence[TierRule]] = None,
    ):
        """Initialize detector.

        Args:
            location: User locale, selects contacts and message language
            config: Scoring and history configuration
            rules: Tier rules in priority order
        """
        self.location = location
        self.config = config or DetectorConfig()
        self.rules = tuple(rules) if rules is not None else DEFAULT_TIER_RULES
        self.last_detection_time: Optional[datetime] = None
        self._history: Deque[CrisisAssessment] = deque(maxlen=self.config.history_size)
        self._lock = threading.Lock()

    def classify(self, message: str) -> CrisisAssessment:
        """Classify without touching history."""
        return classify(message, self.rules, self.config)

    def analyze_message(self, message: str) -> CrisisAssessment:
        """Classify a user message and record it in history.

        Logs:
            - CRISIS_DETECTED: CRITICAL level (critical)
            - CRISIS_RISK_ELEVATED: HIGH level (warning)
        """
        assessment = self.classify(message)

        with self._lock:
            self._history.append(assessment)
            self.last_detection_time = assessment.assessed_at

        if assessment.level == CrisisLevel.CRITICAL:
            logger.critical(
                "CRISIS_DETECTED",
                extra={
                    "level": assessment.level.value,
                    "confidence": assessment.confidence,
                    "trigger_count": len(assessment.triggers),
                    "pattern_version": self.config.pattern_version,
                    "action": "EMERGENCY_PROTOCOL",
                }
            )
        elif assessment.level == CrisisLevel.HIGH:
            logger.warning(
                "CRISIS_RISK_ELEVATED",
                extra={
                    "level": assessment.level.value,
                    "confidence": assessment.confidence,
                    "trigger_count": len(assessment.triggers),
                    "pattern_version": self.config.pattern_version,
                }
            )

        return assessment

    def get_crisis_message(self, level: CrisisLevel) -> str:
        return crisis_message(level, self.location)

    def get_emergency_contacts(self) -> List[EmergencyContact]:
        return contacts_for_location(self.location)

    def get_detection_history(self) -> List[CrisisAssessment]:
        with self._lock:
            return list(self._history)

    def clear_history(self) -> None:
        with self._lock:
            self._history.clear()

    def check_deterioration_pattern(self) -> bool:
        """True when the recent window shows repeated high-risk messages.

        Deteriorating means at least 2 CRITICAL or at least 3 HIGH among
        the last 5 recorded classifications (thresholds from config).
        """
        with self._lock:
            recent = list(self._history)[-self.config.deterioration_window:]

        critical_count = sum(1 for a in recent if a.level == CrisisLevel.CRITICAL)
        high_count = sum(1 for a in recent if a.level == CrisisLevel.HIGH)

        return (
            critical_count >= self.config.deterioration_critical_count
            or high_count >= self.config.deterioration_high_count
        )


_crisis_detector_instance: Optional[CrisisDetector] = None


def get_crisis_detector(location: Optional[str] = None) -> CrisisDetector:
    """Get or create the process-wide detector.

    The location passed on the first call wins; later arguments are ignored.
    """
    global _crisis_detector_instance

    if _crisis_detector_instance is None:
        _crisis_detector_instance = CrisisDetector(location or "pt-BR")

    return _crisis_detector_instance
