DEFAULT_LANGUAGE = "ru"

SUPPORTED_TTS_LANGUAGES: tuple[str, ...] = ("ru", "en", "de", "es", "fr", "it", "hi")

# (code, markers); a marker matches as a substring, the code as a prefix
_LANGUAGE_MARKERS: tuple[tuple[str, tuple[str, ...]], ...] = (
    ("ru", ("рус", "russian")),
    ("en", ("англ", "english")),
    ("de", ("нем", "german", "deutsch")),
    ("fr", ("фран", "french")),
    ("es", ("испан", "spanish")),
    ("it", ("итал", "italian")),
    ("hi", ("хинди", "hindi")),
)


def _match_language(value: str | None) -> str | None:
    if value is None or not value.strip():
        return None
    lowered = value.strip().lower()
    for code, markers in _LANGUAGE_MARKERS:
        if lowered.startswith(code) or any(marker in lowered for marker in markers):
            return code
    return None


def normalize_language(value: str | None) -> str:
    """Map a language name or code to a TTS voice code, defaulting to Russian."""
    return _match_language(value) or DEFAULT_LANGUAGE


def is_tts_supported(value: str | None) -> bool:
    return _match_language(value) in SUPPORTED_TTS_LANGUAGES


__all__ = [
    "DEFAULT_LANGUAGE",
    "SUPPORTED_TTS_LANGUAGES",
    "is_tts_supported",
    "normalize_language",
]
