"""Lightweight keyword-based language detection and fixed reply texts."""
import re
from typing import Optional

SUPPORTED_LANGUAGES = ("en", "pidgin", "yo", "ha", "ig")

LANGUAGE_MARKERS = {
    "pidgin": ("wetin", "dey", "abeg", "oya", "una", "wahala", "na so", "how far"),
    "yo": ("bawo", "e kaaro", "e kaasan", "ese", "jowo"),
    "ha": ("sannu", "yaya", "nagode", "ina kwana"),
    "ig": ("kedu", "biko", "daalu", "ndewo"),
}

APOLOGIES = {
    "en": "Sorry, I'm having trouble right now. Please try again in a moment.",
    "pidgin": "Abeg no vex, something no work well. Try again small time.",
    "yo": "E ma binu, isoro kan wa. Jowo gbiyanju lẹẹkansi.",
    "ha": "Yi hakuri, akwai matsala. Don Allah a sake gwadawa.",
    "ig": "Ndo, enwere nsogbu. Biko nwaa ọzọ.",
}

CANCELLED = {
    "en": "Okay, I've cancelled that. Send *menu* to see what I can do.",
    "pidgin": "Oya, I don cancel am. Send *menu* make you see wetin I fit do.",
    "yo": "O dara, mo ti fagile. Fi *menu* ranṣẹ.",
    "ha": "To, na soke. Aika *menu*.",
    "ig": "Ọ dị mma, akagbuola m ya. Zipu *menu*.",
}

SESSION_EXPIRED = {
    "en": "Your previous session timed out, so we're starting fresh.",
    "pidgin": "Your last session don expire, we go start again.",
    "yo": "Igba rẹ ti pari, a o bẹrẹ tuntun.",
    "ha": "Lokacinka ya kare, za mu sake farawa.",
    "ig": "Oge gị agwụla, anyị ga-amalite ọhụrụ.",
}


def detect_language(text: str, current: Optional[str] = None) -> str:
    """
    Guess the language of a message from marker words.

    Falls back to ``current`` (or English) when nothing matches.
    """
    lowered = f" {(text or '').lower()} "
    for language, markers in LANGUAGE_MARKERS.items():
        for marker in markers:
            if re.search(rf"\b{re.escape(marker)}\b", lowered):
                return language
    return current if current in SUPPORTED_LANGUAGES else "en"


def apology(language: Optional[str]) -> str:
    return APOLOGIES.get(language or "en", APOLOGIES["en"])


def cancelled(language: Optional[str]) -> str:
    return CANCELLED.get(language or "en", CANCELLED["en"])


def session_expired(language: Optional[str]) -> str:
    return SESSION_EXPIRED.get(language or "en", SESSION_EXPIRED["en"])
