# app/utils.py
"""Logging and retry helpers for the listing search service.

Every module logs through the shared `listing-search` logger; the level comes
from `LOG_LEVEL`. `retry` guards scheduled maintenance jobs against transient
database errors (dropped connections, failover) with exponential backoff.
"""
import os
import logging
import time
from functools import wraps
from dotenv import load_dotenv

load_dotenv()

def get_logger(name=__name__):
    level = os.getenv("LOG_LEVEL", "INFO").upper()
    logging.basicConfig(
        format="%(asctime)s | %(levelname)-7s | %(name)s | %(message)s",
        level=getattr(logging, level, logging.INFO)
    )
    return logging.getLogger(name)

logger = get_logger("listing-search")

def retry(exceptions, tries=3, delay=1, backoff=2, logger=logger):
    """Re-run the wrapped call on `exceptions`; the last attempt's error propagates."""
    def deco_retry(f):
        @wraps(f)
        def f_retry(*args, **kwargs):
            mtries, mdelay = tries, delay
            while mtries > 1:
                try:
                    return f(*args, **kwargs)
                except exceptions as e:
                    logger.warning("Retryable error in %s: %s, retrying in %s sec", f.__name__, e, mdelay)
                    time.sleep(mdelay)
                    mtries -= 1
                    mdelay *= backoff
            return f(*args, **kwargs)
        return f_retry
    return deco_retry
