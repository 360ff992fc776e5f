"""
YouTube Data API poller.

Fetches live statistics for submitted YouTube clips and folds them into
the clip records.

API details:
  Endpoint:   GET https://www.googleapis.com/youtube/v3/videos
  Auth:       key=<YOUTUBE_API_KEY> query parameter
  Batching:   up to 50 comma-separated ids per request
  Parts:      statistics (viewCount), snippet (description)

Pipeline performed here:
  Step 1: Extract the 11-char video id from each clip URL (skip unparseable)
  Step 2: Fetch statistics + snippet in batches of 50 (retry 429 / 5xx / network)
  Step 3: Check campaign hashtag + creator ownership tag in the description
  Step 4: apply_poll_result() → baseline, verification, earnings
"""

import logging
import re
import time
from typing import Optional

import httpx

import config
from models.schemas import ClipSubmission, RiskThrottleState
from services.submissions import apply_poll_result

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------
BATCH_SIZE = 50             # Max ids per videos.list request
MAX_RETRIES = 3             # Retry count for network/rate-limit errors
RETRY_BACKOFF_BASE = 2.0    # Backoff base (2s, then 4s)
REQUEST_TIMEOUT = 30.0      # HTTP timeout per request in seconds
REFERRAL_PREFIX_LENGTH = 10  # Ownership suffix = referral_code[10:]

VIDEO_ID_PATTERNS = [
    re.compile(r"youtu\.be/([a-zA-Z0-9_-]{11})"),
    re.compile(r"youtube\.com/shorts/([a-zA-Z0-9_-]{11})"),
    re.compile(r"youtube\.com/watch\?v=([a-zA-Z0-9_-]{11})"),
    re.compile(r"youtube\.com/embed/([a-zA-Z0-9_-]{11})"),
]


# ===========================================================================
# Public API
# ===========================================================================

def poll_youtube_clips(
    clips: list[ClipSubmission],
    referral_codes: dict[str, str],
    throttle: Optional[RiskThrottleState] = None,
) -> tuple[list[ClipSubmission], int]:
    """
    Poll YouTube for every pending/verified YouTube clip and update it.

    Args:
        clips:          Clip submissions (any platform/status; others pass through)
        referral_codes: {user_id: referral_code} for ownership checks
        throttle:       Current throttle state, selects the RPM

    Returns:
        (clips, updated_count) — same order as the input, updated where polled

    Raises:
        RuntimeError: If the API key is missing or the API returns a non-retryable error
    """
    if not config.YOUTUBE_API_KEY:
        raise RuntimeError("YOUTUBE_API_KEY not configured")

    # ------------------------------------------------------------------
    # Step 1: Map video ids → clip positions
    # ------------------------------------------------------------------
    id_to_index: dict[str, int] = {}
    for idx, clip in enumerate(clips):
        if clip.platform != "youtube" or clip.status not in ("pending", "verified"):
            continue
        video_id = extract_youtube_id(clip.clip_url)
        if video_id is None:
            logger.debug(f"  [{clip.id}] no YouTube id in {clip.clip_url!r}, skipping")
            continue
        id_to_index[video_id] = idx

    logger.info(f"Polling {len(id_to_index)} YouTube clips (of {len(clips)} submitted)")
    if not id_to_index:
        return list(clips), 0

    # ------------------------------------------------------------------
    # Step 2: Fetch statistics
    # ------------------------------------------------------------------
    stats = fetch_video_statistics(list(id_to_index.keys()))

    # ------------------------------------------------------------------
    # Steps 3 + 4: Tag checks and clip updates
    # ------------------------------------------------------------------
    result = list(clips)
    updated = 0
    for video_id, (view_count, description) in stats.items():
        idx = id_to_index.get(video_id)
        if idx is None:
            continue
        clip = result[idx]
        tags_ok = (
            has_campaign_tag(description)
            and has_ownership_tag(description, referral_codes.get(clip.user_id))
        )
        result[idx] = apply_poll_result(clip, view_count, tags_ok, throttle)
        updated += 1

    logger.info(f"YouTube poll complete: {updated}/{len(id_to_index)} clips updated")
    return result, updated


def extract_youtube_id(url: str) -> Optional[str]:
    for pattern in VIDEO_ID_PATTERNS:
        match = pattern.search(url)
        if match:
            return match.group(1)
    return None


def has_campaign_tag(description: str, hashtag: str = config.CAMPAIGN_HASHTAG) -> bool:
    """Bare hashtag text counts too (creators often drop the '#')."""
    return hashtag.lower().lstrip("#") in description.lower()


def has_ownership_tag(description: str, referral_code: Optional[str]) -> bool:
    """
    Check for the creator's ownership tag, e.g. '#iamblessed_ab12'.

    The tag suffix is the part of the referral code after its 10-char
    prefix; shorter codes are used whole.
    """
    if not referral_code:
        return False
    suffix = (
        referral_code[REFERRAL_PREFIX_LENGTH:]
        if len(referral_code) > REFERRAL_PREFIX_LENGTH
        else referral_code
    )
    return f"{config.OWNERSHIP_TAG_PREFIX}{suffix}".lower() in description.lower()


# ===========================================================================
# Step 2: Batched statistics fetch
# ===========================================================================

def fetch_video_statistics(video_ids: list[str]) -> dict[str, tuple[int, str]]:
    """
    Fetch view counts and descriptions for the given ids.

    A batch that exhausts its retries is logged and skipped so one bad
    batch doesn't block the rest.

    Returns:
        {video_id: (view_count, description)}
    """
    results: dict[str, tuple[int, str]] = {}

    with httpx.Client(timeout=REQUEST_TIMEOUT) as client:
        for start in range(0, len(video_ids), BATCH_SIZE):
            batch = video_ids[start:start + BATCH_SIZE]
            data = _fetch_batch(client, batch)
            if data is None:
                logger.error(f"Skipping batch starting at {start} after repeated failures")
                continue

            for item in data.get("items", []):
                video_id = item.get("id")
                if not video_id:
                    continue
                view_count = _safe_int(item.get("statistics", {}).get("viewCount"), default=0)
                description = item.get("snippet", {}).get("description") or ""
                results[video_id] = (view_count, description)

    logger.info(f"Fetched statistics for {len(results)}/{len(video_ids)} videos")
    return results


def _fetch_batch(client: httpx.Client, batch: list[str]) -> Optional[dict]:
    """
    Fetch one videos.list batch with retry logic.

    Retries on 429, 5xx and network errors with linear backoff, returning
    None once MAX_RETRIES attempts have failed (no wait after the last one).
    Raises RuntimeError on other 4xx responses (bad key, quota misconfig).
    """
    params = {
        "part": "statistics,snippet",
        "id": ",".join(batch),
        "key": config.YOUTUBE_API_KEY,
    }
    url = f"{config.YOUTUBE_API_BASE_URL}/videos"

    for attempt in range(1, MAX_RETRIES + 1):
        try:
            response = client.get(url, params=params)

            if response.status_code == 200:
                return response.json()

            if response.status_code == 429 or response.status_code >= 500:
                logger.warning(
                    f"YouTube API {response.status_code}, attempt {attempt}/{MAX_RETRIES}"
                )
            else:
                logger.error(f"YouTube API error {response.status_code}: {response.text[:300]}")
                raise RuntimeError(
                    f"YouTube API returned {response.status_code}: {response.text[:200]}"
                )

        except httpx.RequestError as e:
            logger.warning(f"Network error, attempt {attempt}/{MAX_RETRIES}: {e}")

        if attempt < MAX_RETRIES:
            wait_time = RETRY_BACKOFF_BASE * attempt
            logger.info(f"Retrying in {wait_time}s...")
            time.sleep(wait_time)

    logger.error(f"All {MAX_RETRIES} retries exhausted for batch of {len(batch)} ids")
    return None


def _safe_int(value, default: Optional[int] = None) -> Optional[int]:
    if value is None:
        return default
    try:
        return int(value)
    except (ValueError, TypeError):
        return default
