import os
from dotenv import load_dotenv

load_dotenv()

MEMBER_API_BASE_URL = os.getenv("MEMBER_API_BASE_URL", "http://localhost:3000/api")
MEMBER_API_KEY = os.getenv("MEMBER_API_KEY", "")
OUTPUT_DIR = os.getenv("OUTPUT_DIR", "/tmp/referral_payout_reports")
REPORT_MAX_WORKERS = int(os.getenv("REPORT_MAX_WORKERS", "4"))
PAYOUT_CACHE_TTL_SECONDS = float(os.getenv("PAYOUT_CACHE_TTL_SECONDS", "300"))
MAX_TREE_DEPTH = int(os.getenv("MAX_TREE_DEPTH", "200"))
TDS_RATE = float(os.getenv("TDS_RATE", "0.05"))
