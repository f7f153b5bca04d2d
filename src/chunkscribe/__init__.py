"""
chunkscribe: chunked audio transcription pipeline

Ingests sequential audio chunks of a recording session, dispatches them to a
remote transcriber, stitches the word-timestamped results into a de-duplicated
rolling transcript and hands bounded segments to an external summarizer.
"""

__version__ = "0.1.0"
__author__ = "chunkscribe team"
__description__ = "Chunked audio transcription and segment summarization pipeline"
