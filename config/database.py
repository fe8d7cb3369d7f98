"""Database configuration and Supabase client initialization"""
import os
from typing import Optional

from dotenv import load_dotenv
from supabase import create_client, Client

from utils.logger import log_error

load_dotenv()

_supabase: Optional[Client] = None


def _credentials():
    # These must be set as environment variables - no defaults for security
    url = os.environ.get('SUPABASE_URL') or os.environ.get('VITE_SUPABASE_URL')
    key = os.environ.get('SUPABASE_SERVICE_KEY') or os.environ.get('SUPABASE_ANON_KEY')
    if not url or not key:
        raise ValueError(
            "Missing required environment variables: SUPABASE_URL and SUPABASE_SERVICE_KEY "
            "(or SUPABASE_ANON_KEY) must be set. "
            "Please configure these in your environment or .env file."
        )
    return url, key


def get_supabase() -> Client:
    """Get the Supabase client instance, creating it on first use"""
    global _supabase
    if _supabase is None:
        url, key = _credentials()
        try:
            _supabase = create_client(url, key)
        except Exception as e:
            log_error("Error initializing Supabase client", error=e)
            raise
    return _supabase
