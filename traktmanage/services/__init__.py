"""Service layer: Trakt client, local stores, duplicate detection and commands."""
