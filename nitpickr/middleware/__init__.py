"""Request dependencies: authentication, team access and API usage limits."""
