"""Translated guidance messages.

Usage: from i18n import t; t("guidance.ready")

Lookups fall back from the active language to English and then to the key
itself, so a missing entry never raises.
"""

import json
import logging
import sys
from collections import OrderedDict
from pathlib import Path
from typing import Dict, Optional

logger = logging.getLogger(__name__)

LANGUAGES = OrderedDict([
    ("en", {"name": "English", "native_name": "English"}),
    ("es", {"name": "Spanish", "native_name": "Español"}),
])
DEFAULT_LANGUAGE = "en"
SETTINGS_KEY = "language"

_active: Dict[str, str] = {}
_english: Dict[str, str] = {}
_current_lang: str = DEFAULT_LANGUAGE


def _catalog_dir() -> Path:
    """Directory holding <code>.json catalogs, also inside a frozen bundle."""
    if getattr(sys, "frozen", False):
        return Path(sys._MEIPASS) / "i18n"
    return Path(__file__).parent


def _read_catalog(lang_code: str) -> Dict[str, str]:
    path = _catalog_dir() / f"{lang_code}.json"
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except (FileNotFoundError, json.JSONDecodeError):
        logger.warning("Translation catalog %s is missing or invalid", path)
        return {}
    data.pop("_meta", None)
    return data


def _settings():
    from PyQt6.QtCore import QSettings
    return QSettings("MoleGuide", "MoleGuide")


def init(lang_code: Optional[str] = None):
    """Load the catalogs for lang_code, or for the saved preference when None."""
    global _active, _english, _current_lang
    if lang_code is None:
        lang_code = _settings().value(SETTINGS_KEY, DEFAULT_LANGUAGE)
    if lang_code not in LANGUAGES:
        logger.warning("Unsupported language %r, using %s", lang_code, DEFAULT_LANGUAGE)
        lang_code = DEFAULT_LANGUAGE
    _current_lang = lang_code

    _english = _read_catalog(DEFAULT_LANGUAGE)
    _active = _english if lang_code == DEFAULT_LANGUAGE else _read_catalog(lang_code)


def t(key: str, **kwargs) -> str:
    """Translate key, formatting it with kwargs when given."""
    global _english
    if not _english:
        _english = _read_catalog(DEFAULT_LANGUAGE)
    text = _active.get(key) or _english.get(key) or key
    if not kwargs:
        return text
    try:
        return text.format(**kwargs)
    except (KeyError, IndexError, ValueError):
        return text


def get_current_language() -> str:
    return _current_lang


def set_language(code: str):
    """Save the language preference. Takes effect on the next init()."""
    if code not in LANGUAGES:
        raise ValueError(f"Unsupported language: {code}")
    _settings().setValue(SETTINGS_KEY, code)
