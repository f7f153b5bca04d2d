"""
Domain entities package.
"""

from .chunk import Chunk
from .segment import Segment
from .session import BUSINESS_ID_FIELDS, Session

__all__ = [
    "BUSINESS_ID_FIELDS",
    "Chunk",
    "Segment",
    "Session",
]
