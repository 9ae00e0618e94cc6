"""Outbound clients for the completion service and the code-hosting API."""
