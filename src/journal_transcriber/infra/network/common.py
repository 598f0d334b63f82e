from __future__ import annotations

from typing import Dict, Optional

from journal_transcriber.domain.constants import USER_AGENT


def build_headers(api_key: Optional[str] = None, content_type: Optional[str] = None) -> Dict[str, str]:
    """Standard request headers, with bearer auth when a key is given."""
    headers = {"User-Agent": USER_AGENT}
    if api_key:
        headers["Authorization"] = f"Bearer {api_key}"
    if content_type:
        headers["Content-Type"] = content_type
    return headers
