"""Static crisis resources: emergency contacts and supportive messages.

Contacts are keyed by region (Brazil, US). Location strings are browser
style locales such as "pt-BR" or "en-US".
"""
from typing import Dict, List

from wellness.shared.models import ContactType, CrisisLevel, EmergencyContact


BRAZIL_EMERGENCY_CONTACTS: List[EmergencyContact] = [
    EmergencyContact(
        name="CVV - Centro de Valorização da Vida",
        phone="188",
        available="24 horas",
        type=ContactType.HOTLINE,
    ),
    EmergencyContact(
        name="SAMU - Emergência",
        phone="192",
        available="24 horas",
        type=ContactType.EMERGENCY,
    ),
    EmergencyContact(
        name="CAPS - Centro de Atenção Psicossocial",
        phone="Procure o mais próximo",
        available="Horário comercial",
        type=ContactType.SUPPORT,
    ),
]

US_EMERGENCY_CONTACTS: List[EmergencyContact] = [
    EmergencyContact(
        name="988 Suicide & Crisis Lifeline",
        phone="988",
        available="24/7",
        type=ContactType.HOTLINE,
    ),
    EmergencyContact(
        name="Crisis Text Line",
        phone="Text HOME to 741741",
        available="24/7",
        type=ContactType.SUPPORT,
    ),
    EmergencyContact(
        name="Emergency",
        phone="911",
        available="24/7",
        type=ContactType.EMERGENCY,
    ),
]

SUGGESTED_ACTIONS: Dict[CrisisLevel, str] = {
    CrisisLevel.CRITICAL: "Immediate crisis intervention required",
    CrisisLevel.HIGH: "Suggest professional help resources",
    CrisisLevel.MEDIUM: "Offer coping strategies and support",
    CrisisLevel.LOW: "Continue monitoring",
}

_CRISIS_MESSAGES_PT: Dict[CrisisLevel, str] = {
    CrisisLevel.CRITICAL: (
        "Percebo que você está passando por um momento extremamente difícil. "
        "Sua vida tem valor e há pessoas que querem ajudar. "
        "Por favor, procure ajuda imediatamente."
    ),
    CrisisLevel.HIGH: (
        "Você não está sozinho. Há suporte profissional disponível para ajudá-lo "
        "neste momento. Por favor, considere entrar em contato com um dos recursos abaixo."
    ),
    CrisisLevel.MEDIUM: (
        "Está tudo bem não estar bem. Vamos encontrar recursos para apoiá-lo. "
        "Você é importante e merece ajuda."
    ),
    CrisisLevel.LOW: "Estou aqui para ouvir e apoiar você. Como posso ajudar?",
}

_CRISIS_MESSAGES_EN: Dict[CrisisLevel, str] = {
    CrisisLevel.CRITICAL: (
        "I can see you're going through an extremely difficult time. "
        "Your life has value and there are people who want to help. "
        "Please seek help immediately."
    ),
    CrisisLevel.HIGH: (
        "You're not alone. Professional support is available to help you through this. "
        "Please consider reaching out to one of the resources below."
    ),
    CrisisLevel.MEDIUM: (
        "It's okay to not be okay. Let's find resources to support you. "
        "You matter and deserve help."
    ),
    CrisisLevel.LOW: "I'm here to listen and support you. How can I help?",
}


def is_portuguese(location: str) -> bool:
    return "pt" in location


def contacts_for_location(location: str) -> List[EmergencyContact]:
    """Emergency contacts for a locale.

    Portuguese locales get Brazilian services, "en-US" gets US services,
    anything else gets both lists.
    """
    if is_portuguese(location):
        return list(BRAZIL_EMERGENCY_CONTACTS)
    if "en-US" in location:
        return list(US_EMERGENCY_CONTACTS)
    return BRAZIL_EMERGENCY_CONTACTS + US_EMERGENCY_CONTACTS


def crisis_message(level: CrisisLevel, location: str) -> str:
    """Supportive message for a crisis level in the user's language."""
    messages = _CRISIS_MESSAGES_PT if is_portuguese(location) else _CRISIS_MESSAGES_EN
    return messages[level]
