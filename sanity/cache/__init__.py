"""Process-wide caches: response cache, token cache and remote tree cache."""
