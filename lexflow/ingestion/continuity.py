"""Decide whether two adjacent paragraphs belong to the same chunk."""

from __future__ import annotations

import re
from typing import Protocol, Set

STRUCTURAL_BREAK_PATTERNS = [
    re.compile(r"^[A-Z][A-Z\s]{10,}$"),
    re.compile(r"^\d+[.)]\s+[A-Z]"),
    re.compile(r"^(Chapter|Section|Part|Article|Subsection)\s+\d+", re.IGNORECASE),
    re.compile(r"^Table\s+\d+", re.IGNORECASE),
    re.compile(r"^Figure\s+\d+", re.IGNORECASE),
    re.compile(r"^Appendix\s+[A-Z\d]", re.IGNORECASE),
]

CITATION_PATTERNS = [
    re.compile(r"\(\d{4}\)"),
    re.compile(r"\[\d{4}\]"),
    re.compile(r"\bv\.?\s"),
    re.compile(r"^See\s"),
    re.compile(r"^Cf\."),
    re.compile(r"^Id\."),
    re.compile(r"^Supra"),
    re.compile(r"^Infra"),
]

LIST_ITEM_PATTERNS = [
    re.compile(r"^\(?[a-zivx]+\)", re.IGNORECASE),
    re.compile(r"^\d+(\.\d+)*\s"),
]

TERMINAL_PUNCTUATION = re.compile(r"[.!?][\"'”’)\]]*$")

CONNECTIVES = frozenset(
    {
        "and", "or", "but", "which", "that", "because", "however", "therefore",
        "thus", "whereas", "furthermore", "moreover", "additionally", "also",
        "similarly", "likewise", "conversely", "nevertheless", "nonetheless",
        "accordingly", "consequently", "hence", "indeed", "specifically",
        "particularly", "notably",
    }
)

STOPWORDS = frozenset(
    {
        "the", "and", "for", "that", "this", "with", "from", "have", "has", "had",
        "were", "was", "are", "been", "being", "which", "their", "there", "these",
        "those", "such", "shall", "must", "would", "could", "should", "will", "into",
        "upon", "under", "other", "than", "then", "when", "where", "whether", "only",
        "also", "each", "any", "all", "not", "may", "its", "his", "her", "they",
        "them", "what", "who", "whom", "does", "did", "made", "make", "more", "most",
    }
) | CONNECTIVES

TOKEN_OVERLAP_THRESHOLD = 0.25
NOUN_OVERLAP_THRESHOLD = 0.3
CITATION_MIN_PRECEDING_CHARS = 100

_ADVERB_OR_VERB_SUFFIXES = ("ly", "ing", "ed")


class ContinuityScorer(Protocol):
    def is_continuous(self, previous: str, following: str) -> bool:
        ...


def _tokens(text: str) -> Set[str]:
    return {token for token in re.split(r"\W+", text.lower()) if len(token) > 2}


def _noun_candidates(text: str) -> Set[str]:
    """Approximate the nouns of a passage.

    Keeps content words of four or more letters that are neither stopwords nor
    shaped like adverbs or inflected verbs.
    """
    words = re.findall(r"[A-Za-z][A-Za-z'-]+", text)
    nouns: Set[str] = set()
    for word in words:
        lowered = word.lower().strip("'-")
        if len(lowered) < 4 or lowered in STOPWORDS:
            continue
        if lowered.endswith(_ADVERB_OR_VERB_SUFFIXES) and not word[0].isupper():
            continue
        nouns.add(lowered)
    return nouns


def has_structural_break(text: str) -> bool:
    return any(pattern.search(text) for pattern in STRUCTURAL_BREAK_PATTERNS)


def has_citation(text: str) -> bool:
    return any(pattern.search(text) for pattern in CITATION_PATTERNS)


def token_overlap(previous: str, following: str) -> float:
    left, right = _tokens(previous), _tokens(following)
    return len(left & right) / max(1, min(len(left), len(right)))


def noun_overlap(previous: str, following: str) -> float:
    left, right = _noun_candidates(previous), _noun_candidates(following)
    return len(left & right) / max(1, max(len(left), len(right)))


class LegalContinuityScorer:
    """Ordered rules; the first rule that applies decides."""

    def is_continuous(self, previous: str, following: str) -> bool:
        previous = previous.strip()
        following = following.strip()
        if not previous or not following:
            return True

        if has_structural_break(following):
            return False

        last_sentence = re.split(r"(?<=[.!?])\s+", previous)[-1]
        if not TERMINAL_PUNCTUATION.search(last_sentence):
            return True

        first_word = re.split(r"\s+", following, maxsplit=1)[0].strip(",;:").lower()
        if following[0].islower() or first_word in CONNECTIVES:
            return True

        if has_citation(following) and len(previous) > CITATION_MIN_PRECEDING_CHARS:
            return False

        if any(pattern.search(following) for pattern in LIST_ITEM_PATTERNS):
            return True

        if token_overlap(previous, following) > TOKEN_OVERLAP_THRESHOLD:
            return True

        if noun_overlap(previous, following) > NOUN_OVERLAP_THRESHOLD:
            return True

        return False
