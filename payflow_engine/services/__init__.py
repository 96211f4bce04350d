"""Services backing the engine: persistence, credentials, caching and provider adapters."""
