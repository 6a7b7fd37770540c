"""
Nitpickr

Real-estate discovery and collaboration service:
- Listing search and geosearch proxied to the AI/search backend
- Streamed AI "nitpick" reports for a property
- Team workspaces with members, roles and invitations
- Saved listings (nitpicks) and issue discussion (comments, votes)
- Stripe subscriptions with usage-based plan limits
"""

__version__ = "1.0.0"
