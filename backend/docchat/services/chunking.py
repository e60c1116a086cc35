import re
from typing import List

_SENTENCE_SPLIT = re.compile(r"[.!?]+")
SENTENCE_JOINER = ". "


def _fits(candidate: str, max_chunk_size: int) -> bool:
    # leaves room for the trailing "." added when the chunk is flushed
    return len(candidate) < max_chunk_size


def chunk_text(text: str, max_chunk_size: int = 2000) -> List[str]:
    """Split ``text`` into sentence-respecting chunks of at most ``max_chunk_size`` characters.

    Sentences are accumulated greedily and joined with ". ". A sentence that is
    longer than the limit on its own is split on whitespace; its last piece
    seeds the next chunk. A single word longer than the limit is kept whole.
    """
    if len(text) <= max_chunk_size:
        return [text]

    chunks: List[str] = []
    current = ""
    for raw in _SENTENCE_SPLIT.split(text):
        sentence = raw.strip()
        if not sentence:
            continue

        candidate = current + SENTENCE_JOINER + sentence if current else sentence
        if _fits(candidate, max_chunk_size):
            current = candidate
            continue

        if current:
            chunks.append(current + ".")

        if _fits(sentence, max_chunk_size):
            current = sentence
            continue

        # pieces flushed here carry no trailing "." and may use the full limit
        piece = ""
        for word in sentence.split():
            candidate = piece + " " + word if piece else word
            if len(candidate) <= max_chunk_size:
                piece = candidate
            else:
                if piece:
                    chunks.append(piece)
                piece = word
        if not _fits(piece, max_chunk_size) and " " in piece:
            head, _, piece = piece.rpartition(" ")
            chunks.append(head)
        current = piece

    if current:
        chunks.append(current if current.endswith(".") else current + ".")
    return chunks


def count_words(text: str) -> int:
    return len(text.split())
