"""
Helpers for addressing the GIM chat platform.
"""

from typing import Optional

from routeflow.config import settings


def get_gim_base_url(app_id: str, base_url: Optional[str] = None) -> str:
    """
    Build the GIM base URL for an application.

    Uses ``base_url`` when given, otherwise the GIM_BASE_URL setting. A leading
    "@" is stripped, and the "gate" subdomain placeholder is replaced with the
    application id when one is provided.
    """
    raw = (base_url if base_url is not None else settings.GIM_BASE_URL) or ""
    normalized = raw[1:] if raw.startswith("@") else raw
    if not normalized:
        return ""
    if not app_id:
        return normalized
    return normalized.replace("gate", app_id, 1)

