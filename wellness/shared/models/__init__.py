"""Shared domain models for the wellness assistant."""
from .crisis import (
    CrisisLevel,
    CrisisAssessment,
    ContactType,
    EmergencyContact,
)

__all__ = [
    "CrisisLevel",
    "CrisisAssessment",
    "ContactType",
    "EmergencyContact",
]
