"""
Email delivery via Resend.

Email failure must never break a team operation: send functions log
and return False on failure.
"""

import html
import logging

import resend

from nitpickr.config.settings import get_settings

logger = logging.getLogger(__name__)


def _mask(email: str) -> str:
    return email[:3] + "***"


def send_team_invite_email(to_email: str, team_name: str, token: str) -> bool:
    """
    Send a team invitation with the accept link.

    Returns True on success, False on failure. Never raises.
    """
    settings = get_settings()
    if not settings.resend_api_key:
        logger.warning(f"RESEND_API_KEY not set; skipping invitation email to {_mask(to_email)}")
        return False

    invite_url = f"{settings.app_url.rstrip('/')}/invitations/{token}"
    safe_team = html.escape(team_name)

    html_body = f"""
<!DOCTYPE html>
<html>
<head><meta charset="utf-8"></head>
<body style="font-family: system-ui, sans-serif; line-height: 1.5; color: #1f2937;">
  <div style="max-width: 480px; margin: 0 auto; padding: 1.5rem;">
    <p style="font-size: 1.25rem; font-weight: 600;">Nitpickr</p>
    <p>You have been invited to join <strong>{safe_team}</strong>.</p>
    <p style="margin: 1.5rem 0;">
      <a href="{invite_url}" style="display: inline-block; padding: 0.75rem 1.5rem; background: #111827; color: #fff; text-decoration: none; border-radius: 6px; font-weight: 600;">Join team</a>
    </p>
  </div>
</body>
</html>
""".strip()

    try:
        resend.api_key = settings.resend_api_key
        resend.Emails.send(
            {
                "from": settings.email_from,
                "to": [to_email],
                "subject": f"You've been invited to join {team_name}",
                "html": html_body,
            }
        )
        return True
    except Exception as e:
        logger.warning(
            f"Failed to send invitation email to {_mask(to_email)}: {e}", exc_info=True
        )
        return False
