"""API routers for Nitpickr."""

from nitpickr.api import auth, files, issues, listings, misc, nitpicks, payments, teams

__all__ = ["auth", "files", "issues", "listings", "misc", "nitpicks", "payments", "teams"]
