"""
City name canonicalization.

Free-text city labels typed by merchants and drivers come in many spellings
("Mehsana", "Mahesana", "Mehesana City"). Every label is reduced to one
canonical token before it is stored or compared, so matching code only ever
does exact equality on tokens.

Resolution order:
    1. Clean the label (lowercase, strip punctuation and suffixes like "city").
    2. Exact lookup in the alias table.
    3. Lookup by consonant skeleton, which folds vowel-drift variants of the
       table entries ("mehesaana" -> "mehsana"). A skeleton hit only counts
       when the label is also spelled close to one of that city's known
       spellings, so "sirte" does not become "surat".
    4. Otherwise the cleaned label itself is the token.

normalize_city is idempotent: a token always normalizes to itself.
"""

import re
from difflib import SequenceMatcher
from functools import lru_cache
from typing import Dict, Iterable, List, Optional, Tuple

from django.conf import settings

# Canonical token -> known spellings (canonical token included implicitly)
CITY_VARIANTS: Dict[str, Tuple[str, ...]] = {
    "mehsana": ("mahesana", "mehesana", "mahesana city", "mehsana city"),
    "ahmedabad": ("amdavad", "ahmadabad"),
    "gandhinagar": ("gandhi nagar",),
    "vadodara": ("baroda",),
    "surat": (),
    "bengaluru": ("bangalore", "banglore"),
    "mumbai": ("bombay",),
    "kolkata": ("calcutta",),
    "chennai": ("madras",),
    "gurugram": ("gurgaon",),
}

_SUFFIX_WORDS = {"city", "district", "dist", "taluka", "town"}
_VOWELS = set("aeiouy")
_NON_ALNUM = re.compile(r"[^a-z0-9]+")

# Minimum SequenceMatcher ratio between a label and a known spelling
SKELETON_MIN_SIMILARITY = 0.75


def clean_city_label(label: Optional[str]) -> str:
    """Lowercase, strip punctuation and trailing administrative suffixes."""
    if not label:
        return ""
    words = _NON_ALNUM.sub(" ", str(label).lower()).split()
    while len(words) > 1 and words[-1] in _SUFFIX_WORDS:
        words.pop()
    return " ".join(words)


def city_skeleton(cleaned: str) -> str:
    """
    Phonetic fold: first letter plus the remaining consonants, repeats collapsed.

    "mehsana" and "mahesana" both fold to "mhsn".
    """
    compact = cleaned.replace(" ", "")
    if not compact:
        return ""
    folded = compact[0] + "".join(ch for ch in compact[1:] if ch not in _VOWELS)
    return re.sub(r"(.)\1+", r"\1", folded)


def _extra_aliases() -> Tuple[Tuple[str, Tuple[str, ...]], ...]:
    extra = getattr(settings, "CITY_ALIASES", None) or {}
    return tuple(
        (canonical, tuple(variants))
        for canonical, variants in sorted(extra.items())
    )


@lru_cache(maxsize=8)
def _build_index(extra: Tuple[Tuple[str, Tuple[str, ...]], ...]):
    table: Dict[str, Iterable[str]] = dict(CITY_VARIANTS)
    for canonical, variants in extra:
        canonical = clean_city_label(canonical)
        table[canonical] = tuple(table.get(canonical, ())) + tuple(variants)

    aliases: Dict[str, str] = {}
    skeletons: Dict[str, Tuple[str, List[str]]] = {}
    ambiguous = set()

    for canonical, variants in table.items():
        for spelling in (canonical, *variants):
            cleaned = clean_city_label(spelling)
            if not cleaned:
                continue
            aliases[cleaned] = canonical

            skeleton = city_skeleton(cleaned)
            owner, spellings = skeletons.setdefault(skeleton, (canonical, []))
            if owner != canonical:
                ambiguous.add(skeleton)
            spellings.append(cleaned)

    # Two different cities folding to one skeleton: skeleton lookup is unsafe
    for skeleton in ambiguous:
        skeletons.pop(skeleton, None)

    return aliases, skeletons


def normalize_city(label: Optional[str]) -> str:
    """
    Reduce a free-text city label to its canonical token.

    Returns "" for empty labels.
    """
    cleaned = clean_city_label(label)
    if not cleaned:
        return ""

    aliases, skeletons = _build_index(_extra_aliases())

    if cleaned in aliases:
        return aliases[cleaned]

    canonical, spellings = skeletons.get(city_skeleton(cleaned), (None, ()))
    if canonical and any(
        SequenceMatcher(None, cleaned, spelling).ratio() >= SKELETON_MIN_SIMILARITY
        for spelling in spellings
    ):
        return canonical
    return cleaned


def same_city(label_a: Optional[str], label_b: Optional[str]) -> bool:
    """True if both labels are present and canonicalize to the same token."""
    token_a = normalize_city(label_a)
    return bool(token_a) and token_a == normalize_city(label_b)
