"""Repository analysis, interface matching, artifact generation and validation."""
