"""
Token-threshold segmentation of the rolling transcript.
"""

import math
from dataclasses import dataclass
from typing import Optional

DEFAULT_TOKEN_THRESHOLD = 1200


def estimate_tokens(text: str) -> int:
    """Coarse, deterministic token estimate: four characters per token."""
    return math.ceil(len(text) / 4)


def append_text(rolling_text: str, new_text: str) -> str:
    """Append with a single space, only when both sides have text."""
    if rolling_text and new_text:
        return f"{rolling_text} {new_text}"
    return rolling_text or new_text


@dataclass(frozen=True)
class SegmentCut:
    """A segment cut from the rolling buffer, ready to be summarized."""

    segment_index: int
    token_count: int
    text: str


@dataclass(frozen=True)
class SegmentationDecision:
    """Rolling state after applying new text, plus the cut if one happened."""

    rolling_text: str
    rolling_token_count: int
    next_segment_index: int
    cut: Optional[SegmentCut] = None


def decide_segmentation(
    rolling_text: str,
    rolling_token_count: int,
    next_segment_index: int,
    new_text: str,
    threshold: int = DEFAULT_TOKEN_THRESHOLD,
    force: bool = False,
) -> SegmentationDecision:
    """Append ``new_text`` and cut a segment once the threshold is reached.

    The token count accumulates per appended piece of text. ``force`` cuts
    any non-empty buffer regardless of the threshold (session finalize).
    """
    combined = append_text(rolling_text, new_text)
    token_count = rolling_token_count + (estimate_tokens(new_text) if new_text else 0)

    should_cut = bool(combined.strip()) and (force or token_count >= threshold)
    if not should_cut:
        return SegmentationDecision(
            rolling_text=combined,
            rolling_token_count=token_count,
            next_segment_index=next_segment_index,
        )

    return SegmentationDecision(
        rolling_text="",
        rolling_token_count=0,
        next_segment_index=next_segment_index + 1,
        cut=SegmentCut(
            segment_index=next_segment_index,
            token_count=token_count,
            text=combined.strip(),
        ),
    )
