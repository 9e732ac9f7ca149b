"""
DateKelly Data Service Configuration

The hosted backend exposes PostgREST (/rest/v1), GoTrue (/auth/v1) and
Storage (/storage/v1) under a single project URL.
Authentication: project anon key in the `apikey` header, user JWT as Bearer.
"""
import os
from pathlib import Path
from dotenv import load_dotenv


def _clean_env(value: str) -> str:
    """Trim whitespace and surrounding quotes from env values."""
    if value is None:
        return ''
    value = value.strip()
    if (value.startswith('"') and value.endswith('"')) or (value.startswith("'") and value.endswith("'")):
        value = value[1:-1]
    return value.strip()

# Load environment variables
env_path = Path(__file__).parent.parent.parent / '.env'
load_dotenv(env_path)


class Config:
    """Configuration class for the DateKelly data service"""

    # Project URL, e.g. https://<project>.supabase.co
    SUPABASE_URL = _clean_env(os.getenv('DK_SUPABASE_URL', ''))
    SUPABASE_ANON_KEY = _clean_env(os.getenv('DK_SUPABASE_ANON_KEY', ''))

    # Request Settings
    REQUEST_TIMEOUT = int(_clean_env(os.getenv('DK_REQUEST_TIMEOUT', '30')))
    DEBUG = _clean_env(os.getenv('DK_DEBUG', 'false')).lower() == 'true'
    USER_AGENT = _clean_env(os.getenv('DK_USER_AGENT', 'datekelly-python/1.0'))

    # Storage
    STORAGE_CACHE_CONTROL = _clean_env(os.getenv('DK_STORAGE_CACHE_CONTROL', '3600'))

    # Image pipeline
    WATERMARK_TEXT = _clean_env(os.getenv('DK_WATERMARK_TEXT', 'DateKelly.com'))

    # Best-effort side calls (moderation mirroring, audit rows)
    OUTBOX_WORKERS = int(_clean_env(os.getenv('DK_OUTBOX_WORKERS', '2')))

    # Search defaults
    SEARCH_LOCATION = _clean_env(os.getenv('DK_SEARCH_LOCATION', 'London'))
    SEARCH_TARGET_COUNT = int(_clean_env(os.getenv('DK_SEARCH_TARGET_COUNT', '50')))

    @classmethod
    def validate(cls) -> bool:
        """Validate required configuration"""
        if cls.SUPABASE_URL and cls.SUPABASE_ANON_KEY:
            return True

        print("Missing required configuration: DK_SUPABASE_URL and DK_SUPABASE_ANON_KEY")
        print("Get these from the project dashboard → Settings → API")
        return False
