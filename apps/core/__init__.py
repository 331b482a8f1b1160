"""
Shared building blocks for Language Map: base model, exception taxonomy,
structured logging, request tracing, input validation and sanitization.
"""
