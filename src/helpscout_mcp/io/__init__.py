"""IO: response caching."""
