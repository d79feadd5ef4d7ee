"""Address normalization for cache keying and light cleaning for provider queries.

Two distinct normalizations live here:

- ``normalize_address`` is strict and only feeds the cache key: it strips
  diacritics, lowercases, collapses whitespace, expands Brazilian street-type
  abbreviations and drops a trailing country token.
- ``clean_query_text`` is light and produces the text actually sent to
  providers: diacritics and casing are preserved because they help matching.
"""

import hashlib
import re
import unicodedata
from dataclasses import dataclass

# Common street-type abbreviations (dotted form), already accent-stripped and lowercase
STREET_TYPE_MAP: dict[str, str] = {
    "r": "rua",
    "av": "avenida",
    "tv": "travessa",
    "trav": "travessa",
    "pr": "praca",
    "pca": "praca",
    "al": "alameda",
    "est": "estrada",
    "rod": "rodovia",
    "lgo": "largo",
    "jd": "jardim",
}

# Undotted abbreviations are only expanded as the very first token, where they
# cannot be confused with a state code such as "PR" (Paraná).
_LEADING_BARE_ABBREVS = {"r", "av", "tv", "trav", "pca", "al", "est", "rod", "lgo"}

COUNTRY_TOKENS = ("brasil", "brazil")

_WHITESPACE = re.compile(r"\s+")
_SPACE_BEFORE_PUNCT = re.compile(r"\s+([,;])")
_REPEATED_COMMAS = re.compile(r"(,\s*)+,")

# "av." / "r." anywhere at a word start
_DOTTED_PATTERNS: list[tuple[re.Pattern[str], str]] = [
    (re.compile(rf"(?<![\w.]){re.escape(abbrev)}\.\s*(?=\w)"), f"{full} ")
    for abbrev, full in sorted(STREET_TYPE_MAP.items(), key=lambda x: -len(x[0]))
]

_TRAILING_COUNTRY = re.compile(
    r"\s*[,-]\s*(?:" + "|".join(COUNTRY_TOKENS) + r")\s*[.,;]*\s*$",
)


@dataclass(frozen=True)
class NormalizedAddress:
    """Canonical address text used only to compute the cache key."""

    value: str

    @property
    def cache_key(self) -> str:
        """SHA-256 hex digest of the normalized text."""
        return hash_normalized(self.value)

    def __str__(self) -> str:
        return self.value


def hash_normalized(value: str) -> str:
    """Return the SHA-256 hex digest of an already normalized address."""
    return hashlib.sha256(value.encode("utf-8")).hexdigest()


def strip_diacritics(text: str) -> str:
    """Decompose Unicode characters and drop combining marks ("São" → "Sao")."""
    decomposed = unicodedata.normalize("NFKD", text)
    return "".join(ch for ch in decomposed if not unicodedata.combining(ch))


def _expand_abbreviations(text: str) -> str:
    for pattern, replacement in _DOTTED_PATTERNS:
        text = pattern.sub(replacement, text)

    head, sep, rest = text.partition(" ")
    if sep and head in _LEADING_BARE_ABBREVS:
        text = f"{STREET_TYPE_MAP[head]} {rest}"
    return text


def _tidy(text: str) -> str:
    text = _WHITESPACE.sub(" ", text)
    text = _SPACE_BEFORE_PUNCT.sub(r"\1", text)
    text = _REPEATED_COMMAS.sub(",", text)
    return text.strip(" ,;")


def normalize_address(text: str) -> NormalizedAddress:
    """Canonicalize a raw address for hashing.

    Total and deterministic: any input (including empty) yields a value.

    Args:
        text: Raw address text as typed by a user or expanded from a record.

    Returns:
        NormalizedAddress whose ``cache_key`` is stable across accents,
        casing, spacing, abbreviations and a trailing country name.
    """
    if not text:
        return NormalizedAddress("")

    result = strip_diacritics(text).lower()
    result = _tidy(result)
    result = _expand_abbreviations(result)
    result = _tidy(result)
    result = _TRAILING_COUNTRY.sub("", result)
    if result in COUNTRY_TOKENS:
        result = ""
    return NormalizedAddress(_tidy(result))


def clean_query_text(text: str | None) -> str:
    """Lightly clean address text before it is sent to a provider.

    Applies Unicode NFC composition, whitespace collapsing and comma
    tidying. Case, diacritics and abbreviations are left untouched.

    Args:
        text: Raw address text.

    Returns:
        Cleaned text, or an empty string when nothing meaningful remains.
    """
    if not text:
        return ""
    return _tidy(unicodedata.normalize("NFC", text))


def join_address_parts(*parts: str | None, country: str | None = None) -> str:
    """Join non-empty address components with ", ", optionally appending the country."""
    values = [p.strip() for p in parts if p and p.strip()]
    if values and country:
        values.append(country)
    return ", ".join(values)


def clean_postal_code(postal_code: str | None) -> str:
    """Reduce a postal code (CEP) to its digits ("01310-100" → "01310100")."""
    if not postal_code:
        return ""
    return re.sub(r"\D", "", postal_code)
