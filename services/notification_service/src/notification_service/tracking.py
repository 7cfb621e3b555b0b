"""Open and click tracking embedded into outgoing email bodies."""

import html
import re
from urllib.parse import quote
from uuid import UUID

_HREF = re.compile(r'href="(https?://[^"]+)"', re.IGNORECASE)


def tracking_pixel_url(notification_id: UUID | str, base_url: str) -> str:
    return f"{base_url.rstrip('/')}/api/v1/tracking/open/{notification_id}.png"


def tracked_link_url(notification_id: UUID | str, url: str, base_url: str) -> str:
    """Wrap *url* so that following it records a click first.

    The target is fully percent-encoded, including ``/`` and ``?``.
    """
    return (
        f"{base_url.rstrip('/')}/api/v1/tracking/click/{notification_id}"
        f"?url={quote(url, safe='')}"
    )


def add_email_tracking(body: str, notification_id: UUID | str, base_url: str) -> str:
    """Route absolute links through the click tracker and add an open pixel.

    Links already pointing at *base_url* are left alone. The pixel goes
    right before ``</body>`` when the body has one, otherwise at the end.
    """
    base = base_url.rstrip("/")

    def _wrap(match: re.Match[str]) -> str:
        target = html.unescape(match.group(1))
        if target.startswith(base):
            return match.group(0)
        return f'href="{tracked_link_url(notification_id, target, base)}"'

    tracked = _HREF.sub(_wrap, body)
    pixel = (
        f'<img src="{tracking_pixel_url(notification_id, base)}" '
        'width="1" height="1" alt="" />'
    )
    closing = tracked.lower().rfind("</body")
    if closing == -1:
        return tracked + pixel
    return tracked[:closing] + pixel + tracked[closing:]
