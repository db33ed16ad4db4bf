"""Web API for the speaking service."""
