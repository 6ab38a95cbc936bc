"""ASGI surface: request handling, response writing, error formatting."""
