"""
Creator profile ingestion from a published Google Sheet.

Fetches the sheet as CSV and builds the referral-code lookup used by the
YouTube ownership check.

Sheet structure (header row required):
  - user_id         creator's account id
  - referral_code   e.g. "IAMBLESSEDab12" (ownership tag uses the part after 10 chars)
  - email           optional

Output:
  - List of CreatorProfile objects
  - referral_map: {user_id → referral_code}
"""

import io
import logging
from typing import Optional

import httpx
import pandas as pd

import config
from models.schemas import CreatorProfile

logger = logging.getLogger(__name__)

REQUIRED_COLUMNS = ("user_id", "referral_code")


# ===========================================================================
# Public API
# ===========================================================================

def fetch_creator_profiles() -> tuple[list[CreatorProfile], dict[str, str]]:
    """
    Fetch and parse the creator profiles sheet.

    Returns:
        profiles:     List of CreatorProfile objects (one per valid row)
        referral_map: {user_id: referral_code}

    Raises:
        RuntimeError: If the sheet cannot be fetched or is missing columns.
    """
    logger.info("Fetching creator profiles from Google Sheets...")
    df = _fetch_sheet_csv()
    return parse_creator_profiles(df)


def parse_creator_profiles(df: pd.DataFrame) -> tuple[list[CreatorProfile], dict[str, str]]:
    df = df.rename(columns=lambda c: str(c).strip().lower())

    missing = [col for col in REQUIRED_COLUMNS if col not in df.columns]
    if missing:
        raise RuntimeError(
            f"Creator profiles sheet is missing column(s): {', '.join(missing)}. "
            "Check that the correct sheet/tab is published."
        )

    profiles: list[CreatorProfile] = []
    referral_map: dict[str, str] = {}
    skipped_no_id = 0

    for row in df.itertuples(index=False):
        user_id = _clean_string(getattr(row, "user_id"))
        if not user_id:
            skipped_no_id += 1
            continue

        referral_code = _clean_string(getattr(row, "referral_code"))
        email = _clean_string(getattr(row, "email", None))
        profiles.append(CreatorProfile(user_id=user_id, referral_code=referral_code, email=email))

        if not referral_code:
            continue
        # First occurrence wins for duplicate user ids
        if user_id in referral_map:
            if referral_map[user_id] != referral_code:
                logger.warning(
                    f"Duplicate user_id '{user_id}' with a different referral code, "
                    f"keeping '{referral_map[user_id]}'"
                )
        else:
            referral_map[user_id] = referral_code

    logger.info(
        f"Creator profiles loaded: {len(profiles)} profiles, "
        f"{len(referral_map)} referral codes, {skipped_no_id} rows skipped (no user_id)"
    )
    return profiles, referral_map


# ===========================================================================
# Private helpers
# ===========================================================================

def _fetch_sheet_csv() -> pd.DataFrame:
    url = config.CREATOR_SHEET_CSV_URL
    if not url:
        raise RuntimeError("CREATOR_SHEET_CSV_URL not configured")

    try:
        logger.debug(f"Fetching: {url}")
        response = httpx.get(url, timeout=30, follow_redirects=True)
        response.raise_for_status()
        return pd.read_csv(io.StringIO(response.text), dtype=str)
    except (httpx.HTTPError, pd.errors.ParserError, pd.errors.EmptyDataError) as e:
        logger.error(f"Failed to fetch creator profiles sheet: {e}")
        raise RuntimeError(f"Could not fetch creator profiles: {e}") from e


def _clean_string(raw_value) -> Optional[str]:
    if raw_value is None or pd.isna(raw_value):
        return None
    cleaned = str(raw_value).strip()
    return cleaned if cleaned else None
