"""Domain model: sessions, chunks, segments and their state machines."""
