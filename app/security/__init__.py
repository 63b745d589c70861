"""Security utilities: identity provider, accounts and signed tokens."""
