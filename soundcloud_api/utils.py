import re
import urllib.parse
from datetime import datetime
from typing import List, Optional

_TAG_TOKEN = re.compile(r'[^\s"]+|"([^"]*)"')

_WIDGET_PARAMS = (
    "&show_teaser=false&color=%2300a99d&inverse=false&show_user=false"
    "&sharing=false&buying=false&liking=false&show_artwork=false&show_name=false"
)


def get_tags(tag_list: Optional[str]) -> List[str]:
    """Split a SoundCloud tag_list into URL-encoded tags.

    Quoted tags keep their spaces: '"hip hop" bass' -> ['hip%20hop', 'bass'].
    """
    if not tag_list:
        return []

    tags = []
    for match in _TAG_TOKEN.finditer(tag_list):
        tag = match.group(1) if match.group(1) is not None else match.group(0)
        # Same safe set as JavaScript's encodeURIComponent; quotes get a backslash.
        encoded = urllib.parse.quote(tag.strip(), safe="-_.!~*'()")
        tags.append(encoded.replace("'", "\\'"))
    return tags


def get_widget_url(track_id) -> str:
    """Encoded player widget URL for a track (minimal player, no artwork)."""
    return f"https%3A//api.soundcloud.com/tracks/{track_id}{_WIDGET_PARAMS}"


def format_date(date: datetime) -> str:
    return date.strftime("%Y%m%d%H%M%S")
