"""Turns ranked chunks into prompt context and a source list."""
from dataclasses import dataclass
from typing import List, Protocol, Sequence

CHUNK_SEPARATOR = "\n\n"


class NamedChunk(Protocol):
    content: str
    document_name: str


@dataclass(frozen=True)
class AssembledContext:
    text: str
    sources: List[str]


def assemble_context(chunks: Sequence[NamedChunk]) -> AssembledContext:
    """Join chunk texts in rank order and list their documents.

    Rank order is kept as given. Document names appear once, at the
    position of their best-ranked chunk.
    """
    text = CHUNK_SEPARATOR.join(chunk.content for chunk in chunks)
    sources = list(dict.fromkeys(chunk.document_name for chunk in chunks))
    return AssembledContext(text=text, sources=sources)
