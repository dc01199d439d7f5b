"""Legal metadata extraction for chunk text."""

from __future__ import annotations

import re
from typing import List, Optional, Pattern, Protocol, Sequence

from lexflow.models.chunk import ChunkMetadata
from lexflow.models.document import Paragraph

MAX_REFERENCES = 10
MAX_HEADER_CHARS = 150

CASE_CITATION_PATTERNS = [
    # Smith v. Jones, 123 F.3d 456 (9th Cir. 1999)
    re.compile(
        r"[A-Z][a-zA-Z\s,.']+\s+v\.?\s+[A-Z][a-zA-Z\s,.']+,\s*\d+\s+[A-Z][a-zA-Z.]+\s*\d*\s+\d+\s*\([^)]+\d{4}\)"
    ),
    re.compile(r"\[\d{4}\]\s+[A-Z]+\s+\d+"),
    re.compile(r"[A-Z][a-zA-Z\s]+\s+v\.?\s+[A-Z][a-zA-Z\s]+\s*\(\d{4}\)"),
    re.compile(r"\[\d{4}\]\s+[A-Z]{2,}\s+\d+"),
]

STATUTE_REFERENCE_PATTERNS = [
    re.compile(r"\d+\s+U\.?S\.?C\.?\s*§\s*\d+[a-z]*", re.IGNORECASE),
    re.compile(r"(?:Section|§|s\.)\s*\d+(?:\(\d+\))?(?:\([a-z]\))?", re.IGNORECASE),
    re.compile(r"Article\s+\d+(?:\(\d+\))?", re.IGNORECASE),
    re.compile(r"(?:Part|Chapter)\s+[IVXLCDM\d]+", re.IGNORECASE),
    re.compile(r"The\s+[A-Z][a-zA-Z\s]+Act\s+\d{4}"),
]

SECTION_HEADER_PATTERNS = [
    re.compile(r"^(?:Section|Article|Part|Chapter)\s+[\dIVXLCDM]+[:.\s]+([^\n]{1,100})", re.IGNORECASE),
    re.compile(r"^(\d+(?:\.\d+)*)\s+([A-Z][^\n]{1,100})"),
    re.compile(r"^([IVXLCDM]+)\.\s+([A-Z][^\n]{1,100})"),
    re.compile(r"^([A-Z][A-Z\s]{5,50})$", re.MULTILINE),
]

REASONING_PATTERNS = [
    ("issue_statement", re.compile(r"\b(issue|question|problem)\b.*?\b(is|are|was|were)\b", re.I)),
    ("rule_statement", re.compile(r"\b(rule|law|standard|test|principle)\b.*?\b(is|are|requires|provides|states)\b", re.I)),
    ("application_analysis", re.compile(r"\b(application|analysis|applying|appraisal)\b.*?\b(to|of)\b", re.I)),
    ("conclusion", re.compile(r"\b(conclusion|result|outcome|therefore|thus|hence|accordingly)\b", re.I)),
    ("argument_extension", re.compile(r"\b(moreover|furthermore|additionally|in addition)\b", re.I)),
    ("counter_argument", re.compile(r"\b(however|nevertheless|notwithstanding|despite|although)\b", re.I)),
    ("logical_conclusion", re.compile(r"\b(therefore|consequently|thus|hence|accordingly|as a result)\b", re.I)),
    ("definition", re.compile(r"\b(means|shall mean|is defined as|definition)\b", re.I)),
    ("exception_qualifier", re.compile(r"\b(except|unless|provided that|notwithstanding|subject to)\b", re.I)),
    ("citation_reference", re.compile(r"\b(see|see also|cf|compare|contra)\b", re.I)),
    ("authority_reference", re.compile(r"\b(pursuant to|in accordance with|under|per)\b", re.I)),
]

ARGUMENT_PHASE_PATTERNS = [
    (
        "issue",
        [
            re.compile(r"(issue|question|matter|problem)\s+(is|before|presented|to be decided)", re.I),
            re.compile(r"whether.*\?", re.I),
        ],
    ),
    (
        "rule",
        [
            re.compile(r"(rule|law|standard|test|principle|doctrine)\s+(is|provides|states|requires)", re.I),
            re.compile(r"under\s+(the\s+)?\w+\s+(act|statute|law|rule)", re.I),
            re.compile(r"(established|settled|well-established)\s+(law|principle|rule)", re.I),
        ],
    ),
    (
        "application",
        [
            re.compile(r"(applying|application|here|in this case|in the present case)", re.I),
            re.compile(r"the\s+(facts|evidence|record)\s+(shows?|demonstrates?|indicates?)", re.I),
        ],
    ),
    (
        "conclusion",
        [
            re.compile(r"therefore|accordingly|thus|hence|we (hold|conclude|find)|it is (held|concluded)|in conclusion", re.I),
            re.compile(r"(affirmed|reversed|remanded|dismissed|granted|denied)", re.I),
        ],
    ),
]


class MetadataExtractor(Protocol):
    def extract(self, text: str, paragraphs: Sequence[Paragraph] = ()) -> ChunkMetadata:
        ...


def _collect(patterns: Sequence[Pattern[str]], text: str) -> List[str]:
    found: List[str] = []
    for pattern in patterns:
        for match in pattern.finditer(text):
            value = match.group(0).strip()
            if value and value not in found:
                found.append(value)
                if len(found) >= MAX_REFERENCES:
                    return found
    return found


def extract_case_citations(text: str) -> List[str]:
    return _collect(CASE_CITATION_PATTERNS, text)


def extract_statute_references(text: str) -> List[str]:
    return _collect(STATUTE_REFERENCE_PATTERNS, text)


def extract_section_header(text: str) -> Optional[str]:
    stripped = text.strip()
    for pattern in SECTION_HEADER_PATTERNS:
        match = pattern.search(stripped)
        if match:
            return match.group(0).strip()[:MAX_HEADER_CHARS]
    return None


def detect_reasoning_patterns(text: str) -> List[str]:
    return [name for name, pattern in REASONING_PATTERNS if pattern.search(text)]


def detect_argument_phase(text: str) -> Optional[str]:
    """Classify case-law text as issue, rule, application or conclusion.

    Phases are tested in that order and the first match wins.
    """
    for phase, patterns in ARGUMENT_PHASE_PATTERNS:
        if any(pattern.search(text) for pattern in patterns):
            return phase
    return None


class LegalMetadataExtractor:
    """Regex-based extractor for citations, references and reasoning tags."""

    def extract(self, text: str, paragraphs: Sequence[Paragraph] = ()) -> ChunkMetadata:
        heading = next((p for p in paragraphs if p.is_heading), None)
        return ChunkMetadata(
            section_header=extract_section_header(text),
            case_citations=extract_case_citations(text),
            statute_references=extract_statute_references(text),
            detected_patterns=detect_reasoning_patterns(text),
            heading_context=heading.text.strip()[:MAX_HEADER_CHARS] if heading else None,
        )
