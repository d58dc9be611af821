"""Context assembler: fit ranked chunks into a character budget.

Each chunk is rendered as a numbered block::

    [1] handbook.pdf, page 3
    <chunk text>

Blocks are joined by a blank line and the budget applies to the whole
rendered string. Chunks are taken greedily in rank order; assembly stops at
the first block that would overflow, and chunk text is never cut. Leading
chunks too large for the budget on their own are skipped and reported via
``truncated``.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field

from mnemos.rag.retriever import ScoredChunk

_SEPARATOR = "\n\n"


@dataclass(frozen=True)
class Citation:
    """Stable handle for one included chunk."""

    number: int
    record_id: str
    display_name: str
    page_start: int | None
    page_end: int | None
    chunk_id: int | None
    sequence_index: int

    @property
    def label(self) -> str:
        if self.page_start is None:
            return self.display_name
        if self.page_end is None or self.page_end == self.page_start:
            return f"{self.display_name}, page {self.page_start}"
        return f"{self.display_name}, pages {self.page_start}-{self.page_end}"


@dataclass
class AssembledContext:
    text: str = ""
    chunk_count: int = 0
    truncated: bool = False
    citations: list[Citation] = field(default_factory=list)
    chunks: list[ScoredChunk] = field(default_factory=list)


def assemble(ranked: Sequence[ScoredChunk], budget: int) -> AssembledContext:
    """Build a citation-numbered context block no longer than *budget* characters.

    Args:
        ranked: Retriever output, best-first.
        budget: Hard ceiling on ``len(result.text)``.

    Returns:
        AssembledContext with the rendered text and one Citation per block.
    """
    blocks: list[str] = []
    citations: list[Citation] = []
    included: list[ScoredChunk] = []
    used = 0
    truncated = False

    for sc in ranked:
        citation = _citation(sc, number=len(blocks) + 1)
        block = f"[{citation.number}] {citation.label}\n{sc.chunk.text}"
        cost = len(block) + (len(_SEPARATOR) if blocks else 0)
        if used + cost > budget:
            if not blocks:
                # Too big even on its own; skip it and try the next one.
                truncated = True
                continue
            break
        blocks.append(block)
        citations.append(citation)
        included.append(sc)
        used += cost

    return AssembledContext(
        text=_SEPARATOR.join(blocks),
        chunk_count=len(blocks),
        truncated=truncated,
        citations=citations,
        chunks=included,
    )


def _citation(sc: ScoredChunk, number: int) -> Citation:
    chunk = sc.chunk
    return Citation(
        number=number,
        record_id=chunk.record_id,
        display_name=sc.display_name or chunk.record_id,
        page_start=chunk.page_number,
        page_end=chunk.page_number,
        chunk_id=chunk.id,
        sequence_index=chunk.sequence_index,
    )
