"""Domain services: usage accounting, listing transforms, subscriptions and teams."""
