"""Domain services: permission resolution, usage accounting, rate limiting, subscriptions."""
