"""Platform and thumbnail heuristics applied to a URL before it is saved."""

from __future__ import annotations

import re
from typing import Optional

from curation.types import PlatformKey


YOUTUBE_ID_PATTERNS = (
    r"(?:v=)([A-Za-z0-9_-]{11})",
    r"(?:youtu\.be/)([A-Za-z0-9_-]{11})",
    r"(?:shorts/)([A-Za-z0-9_-]{11})",
    r"(?:embed/)([A-Za-z0-9_-]{11})",
)


def detect_platform(url: str) -> PlatformKey:
    lower = str(url or "").strip().lower()
    if "youtube" in lower or "youtu.be" in lower:
        return "youtube"
    if "tiktok" in lower:
        return "tiktok"
    if "instagram" in lower:
        return "instagram"
    return "other"


def extract_youtube_id(url: str) -> Optional[str]:
    text = str(url or "").strip()
    for pattern in YOUTUBE_ID_PATTERNS:
        match = re.search(pattern, text)
        if match:
            return match.group(1)
    return None


def derive_thumbnail(url: str, platform: Optional[str] = None) -> Optional[str]:
    """Return a thumbnail URL when one can be built without fetching; else None."""
    resolved = platform or detect_platform(url)
    if resolved == "youtube":
        video_id = extract_youtube_id(url)
        if video_id:
            return f"https://img.youtube.com/vi/{video_id}/hqdefault.jpg"
    return None
