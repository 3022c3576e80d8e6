"""Pure reading-engine core: tokens, timing, indices, pages, documents.

WHY: These modules carry the engine's invariants (merged punctuation,
word/token index agreement, page-range partitioning) and are shared by
every surface, so they stay free of I/O and event-loop concerns.

HOW: ir.py defines the data structures; tokenizer.py, orp.py, timing.py,
index_map.py and pages.py are pure functions over them; document.py
builds and heals stored documents.
"""
