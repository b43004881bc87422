"""Multilingual goods and category names.

Names are stored either as a locale map (``{"zh_CN": "...", "en": "..."}``)
or, on legacy rows, as a bare string. ``parse_name`` turns either shape into a
``LocalizedName`` or ``LegacyName`` and every other helper works on that union.
"""

import json
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Union


@dataclass(frozen=True)
class LocalizedName:
    translations: Dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class LegacyName:
    text: str


Name = Union[LocalizedName, LegacyName]


def _clean(mapping: Optional[dict]) -> Dict[str, str]:
    if not isinstance(mapping, dict):
        return {}
    return {str(k): str(v) for k, v in mapping.items() if isinstance(v, str) and v.strip()}


def parse_name(raw: Any, name_i18n: Optional[dict] = None, default_locale: str = "zh_CN") -> Name:
    """Build a name from the stored ``name`` value and optional ``name_i18n`` map.

    A string that holds a JSON object is decoded first. A legacy string with
    extra translations becomes a localized name keyed by ``default_locale``.
    """
    if isinstance(raw, str) and raw.lstrip().startswith("{"):
        try:
            raw = json.loads(raw)
        except ValueError:
            raw = raw.strip()  # Not JSON after all, keep the literal text

    extra = _clean(name_i18n)
    if isinstance(raw, dict):
        return LocalizedName({**extra, **_clean(raw)})
    text = "" if raw is None else str(raw)
    if extra:
        return LocalizedName({default_locale: text, **extra} if text else extra)
    return LegacyName(text)


def resolve_name(name: Name, locale: Optional[str] = None, default_locale: str = "zh_CN") -> str:
    """Display string for ``locale``, falling back to the default locale, then any translation."""
    if isinstance(name, LegacyName):
        return name.text
    translations = name.translations
    for candidate in (locale, default_locale):
        if candidate and translations.get(candidate):
            return translations[candidate]
    return next(iter(translations.values()), "")


def all_names(name: Name) -> List[str]:
    if isinstance(name, LegacyName):
        return [name.text] if name.text else []
    return list(name.translations.values())


def name_matches(name: Name, query: str, exact: bool = False) -> bool:
    """Case-insensitive match against every locale of the name."""
    needle = query.strip().lower()
    if not needle:
        return True
    for candidate in all_names(name):
        value = candidate.lower()
        if (value == needle) if exact else (needle in value):
            return True
    return False


def display_name(raw: Any, name_i18n: Optional[dict] = None, locale: Optional[str] = None,
                 default_locale: str = "zh_CN") -> str:
    """Shortcut for ``resolve_name(parse_name(...))``."""
    return resolve_name(parse_name(raw, name_i18n, default_locale), locale, default_locale)
