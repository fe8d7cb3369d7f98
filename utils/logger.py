"""Logging utility for the application"""
import hashlib
import logging
import os
import sys

# Configure logging
log_level = os.environ.get('LOG_LEVEL', 'INFO').upper()
logging.basicConfig(
    level=getattr(logging, log_level, logging.INFO),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    handlers=[
        logging.StreamHandler(sys.stdout)
    ]
)

logger = logging.getLogger('teed_club')

def log_error(message: str, error: Exception = None, traceback_str: str = None):
    """Log error with optional exception and traceback"""
    if error:
        logger.error(f"{message}: {str(error)}", exc_info=error)
    elif traceback_str:
        logger.error(f"{message}\n{traceback_str}")
    else:
        logger.error(message)

def log_warning(message: str):
    """Log warning"""
    logger.warning(message)

def log_info(message: str):
    """Log info"""
    logger.info(message)

def email_hash(email: str) -> str:
    """Short, non-reversible tag for an email address so logs never carry PII"""
    if not email:
        return 'unknown'
    return hashlib.sha256(email.strip().lower().encode('utf-8')).hexdigest()[:8]
