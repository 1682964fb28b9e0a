"""
Device fingerprinting from the User-Agent header
"""

import hashlib
import json
import logging
from typing import Dict

from user_agents import parse

logger = logging.getLogger(__name__)


def describe_device(user_agent: str) -> Dict[str, Dict[str, str]]:
    """
    Parse a User-Agent string into the client, os and device attributes
    that make up the fingerprint
    """
    ua = parse(user_agent or "")
    return {
        "client": {
            "family": ua.browser.family,
            "version": ua.browser.version_string,
        },
        "os": {
            "family": ua.os.family,
            "version": ua.os.version_string,
        },
        "device": {
            "family": ua.device.family,
            "brand": ua.device.brand or "",
            "model": ua.device.model or "",
        },
    }


def generate_device_fingerprint(user_agent: str) -> str:
    """
    Stable SHA-256 hex digest over the parsed client, os and device attributes
    """
    canonical = json.dumps(describe_device(user_agent), sort_keys=True, separators=(",", ":"))
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()
