"""
Watermark merge of word-timestamped chunk transcripts.

Chunks are recorded with overlapping audio windows and may finish
transcription out of order. Each chunk's words are shifted onto the session
timeline and compared against the session watermark (the latest word end
already merged); anything at or behind ``watermark - epsilon`` is a repeat of
audio already in the transcript and is dropped.
"""

import re
from dataclasses import dataclass
from typing import Iterable, List, Optional

from ..dto.transcription_dto import TranscribedWord, TranscriptionResult

DEFAULT_EPSILON_SECONDS = 0.15

# Zero-width and bidi embedding/override/isolate controls, Arabic letter mark, BOM
BIDI_CONTROL_RE = re.compile("[\u200b\u200e\u200f\u202a-\u202e\u2066-\u2069\u061c\ufeff]")
_WS_RE = re.compile(r"\s+")


@dataclass(frozen=True)
class TimedWord:
    """Word on the session timeline (seconds since session start)."""

    text: str
    start: float
    end: float


@dataclass(frozen=True)
class MergeResult:
    text: str
    watermark: float
    kept_words: int
    dropped_words: int
    chunk_max_end: Optional[float] = None


def strip_bidi(text: str) -> str:
    """Remove invisible direction controls, leaving whitespace untouched."""
    return BIDI_CONTROL_RE.sub("", text)


def _timed(word: TranscribedWord, offset: float, fallback_start: float, fallback_end: float) -> TimedWord:
    start = word.start if word.start is not None else fallback_start
    end = word.end if word.end is not None else max(start, fallback_end)
    # Each word keeps a trailing separator; whitespace is normalized on join
    return TimedWord(text=strip_bidi(word.word) + " ", start=start + offset, end=end + offset)


def flatten_words(result: TranscriptionResult, offset_ms: int = 0) -> List[TimedWord]:
    """Flatten a result into timed words shifted by the chunk's session offset.

    Top-level word timestamps win. Otherwise each segment contributes its own
    words, or its whole text as one token spanning the segment.
    """
    offset = (offset_ms or 0) / 1000.0

    if result.words:
        return [_timed(w, offset, 0.0, 0.0) for w in result.words]

    flattened: List[TimedWord] = []
    for segment in result.segments:
        seg_start = segment.start if segment.start is not None else 0.0
        seg_end = segment.end if segment.end is not None else seg_start
        if segment.words:
            flattened.extend(_timed(w, offset, seg_start, seg_end) for w in segment.words)
        elif segment.text and segment.text.strip():
            flattened.append(
                TimedWord(
                    text=strip_bidi(segment.text) + " ",
                    start=seg_start + offset,
                    end=seg_end + offset,
                )
            )
    return flattened


def clean_join(words: Iterable[TimedWord]) -> str:
    """Join words, collapse runs of whitespace, trim."""
    joined = "".join(w.text for w in words)
    return _WS_RE.sub(" ", joined).strip()


def merge_chunk(
    result: TranscriptionResult,
    offset_ms: int,
    watermark: float,
    epsilon: float = DEFAULT_EPSILON_SECONDS,
) -> MergeResult:
    """Merge one chunk against the session watermark.

    The new watermark uses the chunk's maximum end before filtering, so a
    chunk whose words were all dropped can still not pull the frontier back.
    """
    words = flatten_words(result, offset_ms)
    if not words:
        return MergeResult(text="", watermark=watermark, kept_words=0, dropped_words=0)

    words.sort(key=lambda w: w.start)
    cutoff = watermark - epsilon
    kept = [w for w in words if w.end > cutoff]
    chunk_max_end = max(w.end for w in words)

    return MergeResult(
        text=clean_join(kept),
        watermark=max(watermark, chunk_max_end),
        kept_words=len(kept),
        dropped_words=len(words) - len(kept),
        chunk_max_end=chunk_max_end,
    )
