"""Core components: backing streams, record format and the store."""
