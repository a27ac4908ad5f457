"""
Profile photo hosting via the imgbb upload API.
"""
import os
import logging

import requests
from fastapi import HTTPException

logger = logging.getLogger(__name__)

IMGBB_UPLOAD_URL = "https://api.imgbb.com/1/upload"
UPLOAD_TIMEOUT = 30


def upload_image(image_base64: str) -> str:
    """Upload a base64-encoded image and return its public URL."""
    api_key = os.getenv("IMGBB_API_KEY")
    if not api_key:
        raise HTTPException(status_code=503, detail="Image uploads are not configured")
    try:
        resp = requests.post(
            IMGBB_UPLOAD_URL,
            params={"key": api_key},
            data={"image": image_base64},
            timeout=UPLOAD_TIMEOUT,
        )
        payload = resp.json()
    except (requests.RequestException, ValueError):
        logger.exception("Image upload failed")
        raise HTTPException(status_code=502, detail="Image upload failed")
    url = (payload.get("data") or {}).get("url") if isinstance(payload, dict) else None
    if not url:
        logger.warning("Image upload returned no URL (status %s)", resp.status_code)
        raise HTTPException(status_code=502, detail="Upload failed - no URL returned")
    return url
