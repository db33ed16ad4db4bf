"""Core speaking-test logic.

Modules:
- band: band rounding and feedback structures
- identity: identity-provider ID mapping
- transcriber: speech-to-text
- scorer: band-score evaluation
- recording: audio capture state machine and session registry
- test_flow: navigation and timing through test parts
- submission: whole-test submission pipeline
"""

__all__ = [
    "band",
    "identity",
    "transcriber",
    "scorer",
    "recording",
    "test_flow",
    "submission",
]
