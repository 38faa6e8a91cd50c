"""소재 훅(hook) 추출 -- 본문 첫 문장을 정규화해 그룹핑.

A hook is the opening sentence of a creative's body text. Hooks are grouped
by their normalized form (lowercase, no emoji or punctuation) and ranked by
the reach of the creatives that use them.
"""

from __future__ import annotations

import re
from collections.abc import Iterable

from processor.models import Creative, HookGroup

MIN_SENTENCE_LENGTH = 10        # "3.5", "U.S." 같은 조기 분할 방지
MAX_FIRST_LINE_LENGTH = 150
TRUNCATE_LENGTH = 100
MIN_NORMALIZED_LENGTH = 5

_SENTENCE_RE = re.compile(r"^(.+?[.!?])(?:\s|$)")
_EMOJI_RE = re.compile(
    "["
    "\U0001F300-\U0001F9FF"
    "\u2600-\u27BF"
    "\uFE00-\uFE0F"
    "\u200D\u20E3"
    "\U000E0020-\U000E007F"
    "\u231A-\u231B\u23E9-\u23F3\u23F8-\u23FA"
    "\u25AA-\u25AB\u25B6\u25C0\u25FB-\u25FE"
    "]"
)
_PUNCT_RE = re.compile(r"[^\w\s]")
_SPACE_RE = re.compile(r"\s+")


def extract_hook(text: str | None) -> str:
    """First sentence (>= 10 chars), else the first line, else a 100-char cut."""
    trimmed = (text or "").strip()
    if not trimmed:
        return ""

    match = _SENTENCE_RE.match(trimmed)
    if match and len(match.group(1)) >= MIN_SENTENCE_LENGTH:
        return match.group(1).strip()

    first_line = trimmed.split("\n")[0].strip()
    if 0 < len(first_line) <= MAX_FIRST_LINE_LENGTH:
        return first_line

    return trimmed[:TRUNCATE_LENGTH].strip()


def normalize_hook(text: str) -> str:
    text = _EMOJI_RE.sub("", text.lower())
    text = _PUNCT_RE.sub("", text)
    return _SPACE_RE.sub(" ", text).strip()


def group_hooks(hooks: Iterable[tuple[str, str, int]]) -> list[HookGroup]:
    """``(creative_id, hook_text, reach)`` rows -> groups sorted by total reach desc.

    Hooks that normalize to fewer than 5 characters are dropped.
    """
    groups: dict[str, HookGroup] = {}
    for creative_id, hook_text, reach in hooks:
        normalized = normalize_hook(hook_text)
        if len(normalized) < MIN_NORMALIZED_LENGTH:
            continue
        group = groups.get(normalized)
        if group is None:
            groups[normalized] = HookGroup(
                hook_text=hook_text,
                normalized_text=normalized,
                frequency=1,
                total_reach=reach,
                avg_reach_per_creative=0.0,
                creative_ids=[creative_id],
            )
            continue
        group.frequency += 1
        group.total_reach += reach
        group.creative_ids.append(creative_id)

    out = list(groups.values())
    for group in out:
        group.avg_reach_per_creative = group.total_reach / group.frequency
    out.sort(key=lambda g: g.total_reach, reverse=True)
    return out


def extract_hooks(creatives: Iterable[Creative]) -> list[HookGroup]:
    rows = []
    for creative in creatives:
        hook = extract_hook(creative.body)
        if hook:
            rows.append((creative.creative_id, hook, creative.effective_reach))
    return group_hooks(rows)
