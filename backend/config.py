import os
from dotenv import load_dotenv

load_dotenv()

# Payout engine
DEFAULT_RPM = float(os.getenv("DEFAULT_RPM", "0.22"))
PROTECTION_RPM = float(os.getenv("PROTECTION_RPM", "0.18"))
MIN_PAYOUT_CENTS = int(os.getenv("MIN_PAYOUT_CENTS", "222"))
ACTIVATION_THRESHOLD_VIEWS = int(os.getenv("ACTIVATION_THRESHOLD_VIEWS", "1000"))

# YouTube Data API
YOUTUBE_API_KEY = os.getenv("YOUTUBE_API_KEY", "")
YOUTUBE_API_BASE_URL = os.getenv("YOUTUBE_API_BASE_URL", "https://www.googleapis.com/youtube/v3")
CAMPAIGN_HASHTAG = os.getenv("CAMPAIGN_HASHTAG", "3dayneurohackerchallenge")
OWNERSHIP_TAG_PREFIX = os.getenv("OWNERSHIP_TAG_PREFIX", "#iamblessed_")

CREATOR_SHEET_CSV_URL = os.getenv("CREATOR_SHEET_CSV_URL", "")
OUTPUT_DIR = os.getenv("OUTPUT_DIR", "/tmp/payout_reports")
