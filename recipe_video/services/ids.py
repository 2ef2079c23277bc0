# recipe_video/services/ids.py
import re
import uuid
from typing import Literal, Optional

Platform = Literal["youtube", "instagram", "tiktok"]

_YT_RE = re.compile(
    r"(?:youtu\.be/|youtube\.com/(?:watch\?v=|embed/|shorts/|live/))([A-Za-z0-9_-]{6,})"
)
_IG_RE = re.compile(r"instagram\.com/(?:reel|reels|p)/([A-Za-z0-9_-]{5,})")
_TT_RE = re.compile(r"tiktok\.com/(?:@[\w.-]+/video/|t/)?([A-Za-z0-9]{6,})")


def detect_platform(url: str) -> Optional[Platform]:
    """Retorna a plataforma de origem de uma URL, ou None se desconhecida."""
    if _YT_RE.search(url):
        return "youtube"
    if _IG_RE.search(url):
        return "instagram"
    if _TT_RE.search(url):
        return "tiktok"
    return None


def new_run_id() -> str:
    return uuid.uuid4().hex
