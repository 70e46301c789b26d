"""Safety Service: keyword crisis detection and crisis resources.

Every user message is classified BEFORE it reaches the AI backend.
CRITICAL messages bypass the AI entirely and get static resources.

Components:
- config.py: Keyword tables, tier rules and detector configuration
- resources.py: Emergency contacts and supportive messages per locale
- crisis_detector.py: classify() and the stateful CrisisDetector
- crisis_publisher.py: Kinesis publishing of crisis events

Usage:
    from wellness.services.safety_service import CrisisDetector
    detector = CrisisDetector(location="pt-BR")
    assessment = detector.analyze_message(text)
"""

from .config import (
    CRITICAL_KEYWORDS,
    HIGH_KEYWORDS,
    MEDIUM_KEYWORDS,
    NEGATIVE_WORDS,
    DEFAULT_TIER_RULES,
    DetectorConfig,
    TierRule,
)
from .crisis_detector import CrisisDetector, classify, get_crisis_detector
from .crisis_publisher import CrisisEventPublisher, CrisisDetectedEvent
from .resources import (
    BRAZIL_EMERGENCY_CONTACTS,
    US_EMERGENCY_CONTACTS,
    contacts_for_location,
    crisis_message,
)

__all__ = [
    "CRITICAL_KEYWORDS",
    "HIGH_KEYWORDS",
    "MEDIUM_KEYWORDS",
    "NEGATIVE_WORDS",
    "DEFAULT_TIER_RULES",
    "DetectorConfig",
    "TierRule",
    "CrisisDetector",
    "classify",
    "get_crisis_detector",
    "CrisisEventPublisher",
    "CrisisDetectedEvent",
    "BRAZIL_EMERGENCY_CONTACTS",
    "US_EMERGENCY_CONTACTS",
    "contacts_for_location",
    "crisis_message",
]
