"""User directory: roles, profiles and account administration."""
