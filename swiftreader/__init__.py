"""SwiftReader: an RSVP speed-reading engine.

WHY: Rapid serial visual presentation shows one word at a time at a fixed
gaze point, which lets readers go faster than scanning lines. Doing it
well needs more than a timer: punctuation must be folded into words,
pauses must follow sentence structure, and a paginated source must stay
in sync with the word being shown.

HOW: Three layers. core/ holds pure functions and dataclasses (tokenizer,
ORP, timing, index mapping, page segmentation, documents). engine/ runs
timed playback on asyncio and ties documents to storage. server/ and
cli.py are thin surfaces over the engine.

RULES:
- core/ never raises on malformed text and never does I/O
- Every index request is clamped, never rejected
- Storage failures degrade to in-memory operation
"""

__version__ = "0.1.0"
