"""
Helpers for partner booking URLs: currency/locale rewriting and the
redirect page used for POST hand-offs.
"""

import json
import logging
from typing import List, Optional, Tuple
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

from app.models.responses import RedirectDescriptor

logger = logging.getLogger(__name__)

CURRENCY_PARAMS = ("currency", "curr", "cur", "moeda")
LANGUAGE_PARAMS = ("locale", "lang", "language", "idioma")


def _language_value(existing: str, language: str) -> str:
    """Render ``language`` in the same format as the value it replaces."""
    full = "pt-BR" if language.lower().startswith("pt") else language
    short = full.split("-")[0]
    if len(existing) == 2:
        return short.upper() if existing.isupper() else short.lower()
    return full


def apply_locale_and_currency(
    url: str,
    currency: Optional[str] = None,
    language: Optional[str] = None
) -> Tuple[str, bool]:
    """
    Rewrite currency and language query parameters of a partner URL.

    Existing parameters keep their name and casing; only the value changes.
    A missing currency parameter is appended, and a missing locale is
    appended for Portuguese.

    Returns:
        The rewritten URL and whether it changed
    """
    if not url:
        return url, False

    parts = urlsplit(url)
    query: List[Tuple[str, str]] = parse_qsl(parts.query, keep_blank_values=True)
    rewritten: List[Tuple[str, str]] = []
    currency_found = False
    language_found = False

    for name, value in query:
        lowered = name.lower()
        if currency and lowered in CURRENCY_PARAMS:
            currency_found = True
            value = currency.upper()
        elif language and lowered in LANGUAGE_PARAMS:
            language_found = True
            value = _language_value(value, language)
        rewritten.append((name, value))

    if currency and not currency_found:
        rewritten.append(("currency", currency.upper()))
    if language and not language_found and language.lower().startswith("pt"):
        rewritten.append(("locale", "pt-BR"))

    if rewritten == query:
        return url, False

    new_url = urlunsplit(parts._replace(query=urlencode(rewritten)))
    logger.debug(f"Rewrote partner URL for {parts.netloc} (currency={currency}, language={language})")
    return new_url, True


def build_redirect_page_url(descriptor: RedirectDescriptor, template: str = "redirect.html") -> str:
    """URL of the page that re-submits a POST hand-off to the partner."""
    query = urlencode([
        ("click_id", descriptor.click_id or ""),
        ("gate_id", descriptor.gate_id or ""),
        ("url", descriptor.target_url),
        ("method", descriptor.http_method),
        ("params", json.dumps(descriptor.params)),
        ("partner", descriptor.partner_label),
    ])
    return f"{template}?{query}"
