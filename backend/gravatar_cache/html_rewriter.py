"""
Avatar markup rewriter.

Swaps the remote gravatar URLs in an avatar <img> tag for local ones.
"""

import re
from typing import Optional

from .resolver import GravatarCache
from .time_budget import TimeBudget

# Attribute value up to the next attribute, the tag end or closing quote
_ATTR_VALUE = r"""=["']?((?:.(?!["']?\s+(?:\S+)=|\s*/?[>"']))+.)["']?"""

SRCSET_RE = re.compile(r"srcset" + _ATTR_VALUE)
SRC_RE = re.compile(r"(?<![\w-])src" + _ATTR_VALUE)


async def _rewrite_attribute(
    html: str, pattern: re.Pattern, cache: GravatarCache, budget: TimeBudget
) -> str:
    match = pattern.search(html)
    if not match:
        return html

    url = match.group(1).split(" ")[0]
    if not url:
        return html

    local_url = await cache.resolve(url, budget)
    if not local_url:
        # Empty fallback: keep the remote URL
        return html
    return html.replace(url, local_url)


async def rewrite_avatar_html(
    html: str, cache: GravatarCache, budget: Optional[TimeBudget] = None
) -> str:
    """
    Replace the first srcset URL and the first src URL of avatar markup
    with their cached copies.
    """
    if budget is None:
        budget = cache.current_budget()

    html = await _rewrite_attribute(html, SRCSET_RE, cache, budget)
    html = await _rewrite_attribute(html, SRC_RE, cache, budget)
    return html
