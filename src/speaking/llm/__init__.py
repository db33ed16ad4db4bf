"""LLM access for scoring and transcription."""
