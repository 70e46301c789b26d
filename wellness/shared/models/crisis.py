"""Crisis level and emergency contact domain models.

This file defines the core enums and data structures shared by the
crisis detector, the chat pipeline and the HTTP layer.
"""
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List


class CrisisLevel(Enum):
    """Coarse severity tier assigned to a message by keyword heuristics."""
    LOW = "LOW"             # No keyword matched
    MEDIUM = "MEDIUM"       # Emotional difficulty, offer coping strategies
    HIGH = "HIGH"           # Significant distress, suggest professional help
    CRITICAL = "CRITICAL"   # Self-harm or suicide language, bypass the AI

    @property
    def severity(self) -> int:
        """Ordinal used to compare levels (LOW=0 ... CRITICAL=3)."""
        return _SEVERITY[self]

    @property
    def is_elevated(self) -> bool:
        """True for HIGH and CRITICAL."""
        return self in (CrisisLevel.HIGH, CrisisLevel.CRITICAL)


_SEVERITY = {
    CrisisLevel.LOW: 0,
    CrisisLevel.MEDIUM: 1,
    CrisisLevel.HIGH: 2,
    CrisisLevel.CRITICAL: 3,
}


class ContactType(Enum):
    """Category of an emergency resource."""
    HOTLINE = "hotline"
    EMERGENCY = "emergency"
    SUPPORT = "support"


@dataclass(frozen=True)
class EmergencyContact:
    """A static crisis resource shown to the user."""
    name: str
    phone: str              # Number or instruction ("Text HOME to 741741")
    available: str          # Availability window
    type: ContactType

    def to_dict(self) -> Dict[str, str]:
        return {
            "name": self.name,
            "phone": self.phone,
            "available": self.available,
            "type": self.type.value,
        }


@dataclass(frozen=True)
class CrisisAssessment:
    """Result of classifying one message.

    Immutable - assessments are appended to history and never modified.
    """
    level: CrisisLevel
    confidence: float       # 0.0 to 1.0
    triggers: List[str] = field(default_factory=list)
    suggested_action: str = ""
    assessed_at: datetime = field(default_factory=datetime.utcnow)

    def __post_init__(self):
        if not 0.0 <= self.confidence <= 1.0:
            raise ValueError(f"Confidence must be 0.0-1.0, got {self.confidence}")

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for API responses."""
        return {
            "level": self.level.value,
            "confidence": round(self.confidence, 3),
            "triggers": list(self.triggers),
            "suggestedAction": self.suggested_action,
        }
