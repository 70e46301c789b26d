"""Crisis detection keyword tables and scoring rules.

Tables are versioned through DetectorConfig.pattern_version; bump it
whenever a keyword list or weight changes so audit trails can tell which
rules produced a given classification.
"""
from dataclasses import dataclass
from typing import Tuple

from wellness.shared.models import CrisisLevel


# Self-harm and suicide language. Any match -> CRITICAL, AI bypassed.
CRITICAL_KEYWORDS: Tuple[str, ...] = (
    # Portuguese
    "suicídio",
    "suicidar",
    "me matar",
    "acabar com tudo",
    "não aguento mais",
    "quero morrer",
    "vou morrer",
    "acabar com minha vida",
    "tirar minha vida",
    "overdose",
    "me cortar",
    "me machucar",
    # English
    "suicide",
    "kill myself",
    "end it all",
    "cant take it anymore",
    "want to die",
    "going to die",
    "end my life",
    "take my life",
    "cut myself",
    "hurt myself",
    "self harm",
)

# Hopelessness and isolation. Suggest professional help.
HIGH_KEYWORDS: Tuple[str, ...] = (
    # Portuguese
    "sem esperança",
    "não vale a pena",
    "ninguém se importa",
    "sozinho",
    "inútil",
    "fracassado",
    "desistir",
    "não consigo mais",
    # English
    "hopeless",
    "worthless",
    "nobody cares",
    "alone",
    "useless",
    "failure",
    "give up",
    "cant anymore",
)

# Emotional difficulty. Offer coping strategies.
MEDIUM_KEYWORDS: Tuple[str, ...] = (
    # Portuguese
    "deprimido",
    "ansioso",
    "triste demais",
    "cansado de tudo",
    "não durmo",
    "pesadelos",
    "pânico",
    # English
    "depressed",
    "anxious",
    "too sad",
    "tired of everything",
    "cant sleep",
    "nightmares",
    "panic",
)

# Generic negation words; each one present adds a flat confidence bonus
NEGATIVE_WORDS: Tuple[str, ...] = (
    "não",
    "nunca",
    "ninguém",
    "nothing",
    "never",
    "nobody",
    "cant",
    "wont",
)


@dataclass(frozen=True)
class TierRule:
    """One keyword tier: every match adds `increment`, capped at `ceiling`."""
    level: CrisisLevel
    keywords: Tuple[str, ...]
    increment: float
    ceiling: float


# Evaluated in order; the first tier with any match wins
DEFAULT_TIER_RULES: Tuple[TierRule, ...] = (
    TierRule(CrisisLevel.CRITICAL, CRITICAL_KEYWORDS, increment=0.9, ceiling=0.9),
    TierRule(CrisisLevel.HIGH, HIGH_KEYWORDS, increment=0.6, ceiling=0.9),
    TierRule(CrisisLevel.MEDIUM, MEDIUM_KEYWORDS, increment=0.4, ceiling=0.7),
)


@dataclass(frozen=True)
class DetectorConfig:
    """Configuration for crisis detection behavior."""

    # Flat bonus per negative word present, applied after tier scoring
    negative_word_bonus: float = 0.1

    # Classifications retained in memory per detector
    history_size: int = 100

    # Deterioration: look at the last N classifications
    deterioration_window: int = 5
    deterioration_critical_count: int = 2
    deterioration_high_count: int = 3

    # Version tracking for audit trail
    pattern_version: str = "2025.01.1"
