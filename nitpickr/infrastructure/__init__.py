"""External collaborators: Redis, AI/search backend, Stripe, email and file storage."""
