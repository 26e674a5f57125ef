"""Syntactic checks on submitted proof before anything is persisted or analyzed."""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Optional

from challengeflow.models.challenge import (
    CATEGORY_ACTS_OF_CARE,
    CATEGORY_PHYSICAL,
    SUBMITTABLE_CATEGORIES,
)

_YOUTUBE_SHORT = re.compile(r"youtube\.com/shorts/", re.IGNORECASE)
_YOUTUBE_FULL = re.compile(
    r"^(https?://)?((www|m)\.)?(youtube\.com/watch\?(.*&)?v=[\w-]+|youtu\.be/[\w-]+)",
    re.IGNORECASE,
)
_INSTAGRAM_POST = re.compile(
    r"^(https?://)?(www\.)?instagram\.com/(p|reel|reels)/[\w-]+",
    re.IGNORECASE,
)

MESSAGES = {
    "not_public": "Please confirm that your video is public before submitting.",
    "category_closed": "This challenge does not accept direct submissions.",
    "primary_missing": "A YouTube video link is required.",
    "primary_short": "Primary link must be a full-length YouTube video, not a Short.",
    "primary_invalid": "Only YouTube video links are accepted (youtube.com/watch?v=... or youtu.be/...).",
    "result_missing": "A result value is required for this challenge.",
    "result_invalid": "Result must be a positive whole number.",
    "secondary_missing": "An Instagram link is required for acts-of-care challenges.",
    "secondary_invalid": "Invalid Instagram link. Use instagram.com/p/... or instagram.com/reel/...",
}


@dataclass(frozen=True)
class ValidationResult:
    ok: bool
    code: str = ""
    field: str = ""

    @property
    def message(self) -> str:
        return MESSAGES.get(self.code, "")


def _fail(code: str, field: str) -> ValidationResult:
    return ValidationResult(ok=False, code=code, field=field)


def is_full_length_youtube_url(url: str) -> bool:
    if not url or _YOUTUBE_SHORT.search(url):
        return False
    return bool(_YOUTUBE_FULL.match(url.strip()))


def is_instagram_post_url(url: str) -> bool:
    return bool(url) and bool(_INSTAGRAM_POST.match(url.strip()))


def _is_positive_whole_number(value) -> bool:
    if isinstance(value, bool):
        return False
    try:
        v = float(value)
    except (TypeError, ValueError):
        return False
    return v > 0 and v.is_integer()


def validate(
    category: str,
    primary_url: Optional[str],
    secondary_url: Optional[str] = None,
    result_value=None,
    confirmed_public: bool = False,
) -> ValidationResult:
    if not confirmed_public:
        return _fail("not_public", "confirmed_public")

    if category not in SUBMITTABLE_CATEGORIES:
        return _fail("category_closed", "challenge_id")

    primary = (primary_url or "").strip()
    if not primary:
        return _fail("primary_missing", "primary_proof_url")
    if _YOUTUBE_SHORT.search(primary):
        return _fail("primary_short", "primary_proof_url")
    if not is_full_length_youtube_url(primary):
        return _fail("primary_invalid", "primary_proof_url")

    if category == CATEGORY_PHYSICAL:
        if result_value is None or result_value == "":
            return _fail("result_missing", "result_value")
        if not _is_positive_whole_number(result_value):
            return _fail("result_invalid", "result_value")

    secondary = (secondary_url or "").strip()
    if category == CATEGORY_ACTS_OF_CARE and not secondary:
        return _fail("secondary_missing", "secondary_proof_url")
    if secondary and not is_instagram_post_url(secondary):
        return _fail("secondary_invalid", "secondary_proof_url")

    return ValidationResult(ok=True)
