"""Tests for the semantic chunker."""

import pytest

from conftest import make_text, paragraph
from lexflow.ingestion.chunking import SemanticChunker, overlap_tail, split_long_text
from lexflow.ingestion.policies import ChunkPolicy, policy_for
from lexflow.models.document import Paragraph, SourceType


def mixed_document() -> list:
    sentence = "The lessee shall keep the premises in good repair and condition. "
    return [
        paragraph("PART I PRELIMINARY", page=1, heading=True),
        paragraph(make_text(350), page=1),
        paragraph("In this lease the following words have the meanings given to them.", page=1),
        paragraph(make_text(820, lead="every"), page=2),
        paragraph("The point was settled in Donoghue v Stevenson (1932) and applied since.", page=2),
        paragraph(make_text(120, lead="rent"), page=2),
        paragraph("Section 3 Application of this part", page=3),
        paragraph("(a) the lessee shall pay the rent on the quarter days.", page=3),
        paragraph((sentence * 70).strip(), page=3),
        paragraph("   ", page=4),
        paragraph(make_text(40, lead="short"), page=4),
        paragraph("PART II COVENANTS", page=4, heading=True),
        paragraph(make_text(610, lead="the covenant"), page=5),
        paragraph("Accordingly we hold that the covenant was broken.", page=5),
        paragraph(make_text(260, lead="finally"), page=5),
    ]


def source_text(paragraphs) -> str:
    return " ".join(p.text.strip() for p in paragraphs if p.text.strip())


ALL_TYPES = [SourceType.CASE, SourceType.STATUTE, SourceType.TREATY, SourceType.BOOK, SourceType.OTHER]


class TestChunkInvariants:
    @pytest.mark.parametrize("source_type", ALL_TYPES)
    def test_core_texts_reconstruct_document(self, source_type):
        paragraphs = mixed_document()

        chunks = SemanticChunker.for_source_type(source_type).chunk(paragraphs)

        assert " ".join(chunk.core_text for chunk in chunks) == source_text(paragraphs)

    @pytest.mark.parametrize("source_type", ALL_TYPES)
    def test_chunks_respect_hard_ceiling(self, source_type):
        policy = policy_for(source_type)

        chunks = SemanticChunker.for_source_type(source_type).chunk(mixed_document())

        assert all(len(chunk.text) <= policy.max_chunk_chars for chunk in chunks)
        assert all(chunk.overlap_chars <= policy.overlap_chars for chunk in chunks)

    @pytest.mark.parametrize("source_type", ALL_TYPES)
    def test_char_ranges_are_contiguous(self, source_type):
        chunks = SemanticChunker.for_source_type(source_type).chunk(mixed_document())

        assert chunks[0].char_start == 0
        for chunk in chunks:
            assert chunk.char_end - chunk.char_start == len(chunk.core_text)
        for previous, following in zip(chunks, chunks[1:]):
            assert following.char_start == previous.char_end + 1
            assert following.chunk_index == previous.chunk_index + 1

    @pytest.mark.parametrize("source_type", ALL_TYPES)
    def test_overlap_is_suffix_of_previous_chunk(self, source_type):
        chunks = SemanticChunker.for_source_type(source_type).chunk(mixed_document())

        for previous, following in zip(chunks, chunks[1:]):
            window = following.text[: following.overlap_chars]
            assert previous.text.endswith(window)

    @pytest.mark.parametrize("source_type", ALL_TYPES)
    def test_undersized_chunks_only_when_merge_would_overflow(self, source_type):
        policy = policy_for(source_type)
        chunks = SemanticChunker.for_source_type(source_type).chunk(mixed_document())

        for position, chunk in enumerate(chunks):
            if len(chunk.core_text) >= policy.min_chars or len(chunks) == 1:
                continue
            if position < len(chunks) - 1:
                merged = len(chunk.text) + 1 + len(chunks[position + 1].core_text)
            else:
                merged = len(chunks[position - 1].text) + 1 + len(chunk.core_text)
            assert merged > policy.max_chunk_chars

    def test_chunking_is_deterministic(self):
        chunker = SemanticChunker.for_source_type(SourceType.CASE)

        assert chunker.chunk(mixed_document()) == chunker.chunk(mixed_document())

    def test_checksum_and_metadata_are_populated(self):
        chunks = SemanticChunker.for_source_type(SourceType.OTHER).chunk(mixed_document())

        assert all(len(chunk.checksum) == 64 for chunk in chunks)
        assert any(chunk.metadata.case_citations for chunk in chunks)

    def test_empty_input_yields_no_chunks(self):
        assert SemanticChunker().chunk([]) == []
        assert SemanticChunker().chunk([Paragraph(text="  ", page=1)]) == []


class TestBoundaries:
    def test_statute_scenario_three_pages(self):
        lengths = [600, 599, 399, 399, 399]
        pages = [1, 2, 3, 3, 3]
        paragraphs = [paragraph(make_text(n, lead=f"clause{i}"), page=p) for i, (n, p) in enumerate(zip(lengths, pages))]

        chunks = SemanticChunker.for_source_type(SourceType.STATUTE).chunk(paragraphs)

        assert len(chunks) == 2
        assert all(len(chunk.text) <= 1500 for chunk in chunks)
        assert 0 < chunks[1].overlap_chars <= 150
        assert chunks[0].text.endswith(chunks[1].text[: chunks[1].overlap_chars])
        assert chunks[0].core_text == f"{paragraphs[0].text} {paragraphs[1].text}"
        assert chunks[1].page_number == 3
        assert chunks[1].paragraph_index == 2

    def test_heading_starts_new_chunk(self):
        paragraphs = [
            paragraph(make_text(350)),
            paragraph("PART II REMEDIES", heading=True),
            paragraph(make_text(350, lead="damages")),
        ]

        chunks = SemanticChunker.for_source_type(SourceType.OTHER).chunk(paragraphs)

        assert len(chunks) == 2
        assert chunks[1].core_text.startswith("PART II REMEDIES")
        assert chunks[1].metadata.heading_context == "PART II REMEDIES"

    def test_case_policy_breaks_on_argument_phase_shift(self):
        issue = "The " + make_text(446, lead="issue before the court is whether the lessee breached the covenant")
        conclusion = "Accordingly we hold that the lessee broke the covenant to maintain the premises"
        conclusion = (conclusion + " and") * 6
        paragraphs = [paragraph(issue), paragraph(conclusion[:450])]

        case_chunks = SemanticChunker.for_source_type(SourceType.CASE).chunk(paragraphs)
        default_chunks = SemanticChunker.for_source_type(SourceType.OTHER).chunk(paragraphs)

        assert len(case_chunks) == 2
        assert case_chunks[1].core_text.startswith("Accordingly")
        assert len(default_chunks) == 1

    @pytest.mark.parametrize("numbered_sections, second_starts", [(True, "Section 2"), (False, "rent")])
    def test_numbered_section_breaks_early(self, numbered_sections, second_starts):
        policy = ChunkPolicy(
            max_chars=300, min_chars=200, overlap_chars=20, max_chunk_chars=330, numbered_sections=numbered_sections
        )
        paragraphs = [
            paragraph(make_text(150)),
            paragraph("Section 2 the lessee shall pay the rent"),
            paragraph(make_text(250, lead="rent")),
        ]

        chunks = SemanticChunker(policy=policy).chunk(paragraphs)

        assert len(chunks) == 2
        assert chunks[1].core_text.startswith(second_starts)

    def test_short_final_chunk_merges_into_predecessor(self):
        paragraphs = [paragraph(make_text(1400)), paragraph(make_text(200, lead="tail"))]

        chunks = SemanticChunker.for_source_type(SourceType.OTHER).chunk(paragraphs)

        assert len(chunks) == 1
        assert chunks[0].text == source_text(paragraphs)
        assert chunks[0].overlap_chars == 0

    def test_merge_skipped_when_it_would_exceed_ceiling(self):
        policy = ChunkPolicy(max_chars=100, min_chars=50, overlap_chars=10, max_chunk_chars=120)
        paragraphs = [paragraph(make_text(100)), paragraph(make_text(40, lead="tail"))]

        chunks = SemanticChunker(policy=policy).chunk(paragraphs)

        assert len(chunks) == 2
        assert len(chunks[1].core_text) == 40

    def test_long_paragraph_is_split(self):
        sentence = "The lessee shall keep the premises in good repair and condition. "
        paragraphs = [paragraph((sentence * 80).strip())]

        chunks = SemanticChunker.for_source_type(SourceType.STATUTE).chunk(paragraphs)

        assert len(chunks) > 1
        assert all(len(chunk.text) <= 1500 for chunk in chunks)
        assert " ".join(chunk.core_text for chunk in chunks) == paragraphs[0].text


class TestHelpers:
    def test_split_prefers_sentence_end(self):
        text = "First sentence is here. Second sentence is a bit longer than the first one."

        pieces = split_long_text(text, 40)

        assert pieces[0] == "First sentence is here."
        assert " ".join(pieces) == text
        assert all(len(piece) <= 40 for piece in pieces)

    def test_split_hard_cuts_unbroken_text(self):
        assert split_long_text("x" * 25, 10) == ["x" * 10, "x" * 10, "x" * 5]

    def test_overlap_tail_is_word_aligned_suffix(self):
        from lexflow.ingestion.chunking import _Segment

        segment = _Segment(text="alpha beta gamma delta", paragraph_index=0, paragraph=paragraph("x"))

        assert overlap_tail([segment], 12) == "gamma delta"
        assert overlap_tail([segment], 0) == ""
