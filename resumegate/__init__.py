"""resumegate: feature gating, usage accounting and abuse-aware rate limiting for a résumé SaaS."""

__version__ = "0.1.0"
