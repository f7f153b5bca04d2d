"""
Object-storage key layout for session artifacts.

    sessions/{session_id}/raw/chunk-{seq}-{start_ms}-{end_ms}.{ext}
    sessions/{session_id}/transcripts/chunk-{seq}.json
    sessions/{session_id}/segments/segment-{index}-input.txt
    sessions/{session_id}/segments/segment-{index}-summary.json
    sessions/{session_id}/final/summary.json
"""

from typing import Optional

# MIME type -> raw audio extension
AUDIO_EXTENSIONS = {
    "audio/webm": "webm",
    "video/webm": "webm",
    "audio/mp4": "mp4",
    "video/mp4": "mp4",
    "audio/x-m4a": "mp4",
    "audio/wav": "wav",
    "audio/x-wav": "wav",
    "audio/wave": "wav",
    "audio/ogg": "ogg",
    "audio/mpeg": "mp3",
}

JSON_CONTENT_TYPE = "application/json"
TEXT_CONTENT_TYPE = "text/plain; charset=utf-8"


def _session_prefix(session_id: str) -> str:
    return f"sessions/{session_id}"


def audio_extension(content_type: Optional[str]) -> str:
    """Pick the raw audio extension for an upload's MIME type."""
    if not content_type:
        return "bin"
    base = content_type.split(";", 1)[0].strip().lower()
    return AUDIO_EXTENSIONS.get(base, "bin")


def raw_audio_key(session_id: str, seq: int, start_ms: int, end_ms: int, ext: str) -> str:
    return f"{_session_prefix(session_id)}/raw/chunk-{seq}-{start_ms}-{end_ms}.{ext}"


def transcript_key(session_id: str, seq: int) -> str:
    return f"{_session_prefix(session_id)}/transcripts/chunk-{seq}.json"


def segment_input_key(session_id: str, segment_index: int) -> str:
    return f"{_session_prefix(session_id)}/segments/segment-{segment_index}-input.txt"


def segment_summary_key(session_id: str, segment_index: int) -> str:
    return f"{_session_prefix(session_id)}/segments/segment-{segment_index}-summary.json"


def final_summary_key(session_id: str) -> str:
    return f"{_session_prefix(session_id)}/final/summary.json"
