"""
Client for the photo upload script.

ID photos are not stored in the spreadsheet.  They are posted as base64
to a Google Apps Script web app which saves them to Drive and answers
with ``{"success": true, "fileId": "..."}``; only that file id is kept
on the rental row.

Failures are classified so the endpoints can abort before touching the
rental: an error answer from the script is ``UpstreamFailure`` (502), an
unreachable or timed out script is ``BackingStoreUnavailable`` (503).
"""

import logging
from typing import Any, Dict, Optional

import requests

from rental_desk_api.app.core.errors import BackingStoreUnavailable, UpstreamFailure


logger = logging.getLogger(__name__)

VALID_PHOTO_TYPES = ("image/jpeg", "image/jpg", "image/png")


def photo_mime_type(photo_data: str, declared: Optional[str]) -> Optional[str]:
    """MIME type of a photo payload, from ``declared`` or a data URL prefix."""
    if declared:
        return declared.strip().lower()
    if photo_data.startswith("data:") and ";" in photo_data:
        return photo_data[5:photo_data.index(";")].lower()
    return None


class PhotoUploader:
    """Posts photos to the upload script with a bounded timeout."""

    def __init__(self, url: str, timeout: float = 30, session: Optional[requests.Session] = None) -> None:
        self.url = url
        self.timeout = timeout
        self.session = session or requests.Session()

    def upload(self, rental_id: str, photo_data: str, file_name: str) -> str:
        """Upload one photo and return the Drive file id."""
        if not self.url:
            raise BackingStoreUnavailable("GOOGLE_APPS_SCRIPT_WEB_APP_URL is not configured")
        payload: Dict[str, Any] = {
            "action": "uploadPhoto",
            "rentalID": rental_id,
            "photoData": photo_data,
            "fileName": file_name,
        }
        try:
            logger.debug("Uploading photo %s for %s", file_name, rental_id)
            response = self.session.post(self.url, json=payload, timeout=self.timeout)
            response.raise_for_status()
        except requests.Timeout as exc:
            raise BackingStoreUnavailable("Photo upload timed out", cause=exc) from exc
        except requests.HTTPError as exc:
            status = exc.response.status_code if exc.response is not None else None
            details = exc.response.text[:500] if exc.response is not None else str(exc)
            logger.error("Photo upload failed (%s): %s", status, details)
            raise UpstreamFailure(
                "Unable to upload photo to secure storage", upstreamStatus=status, details=details
            ) from exc
        except requests.RequestException as exc:
            raise BackingStoreUnavailable("Unable to connect to photo storage service", cause=exc) from exc

        try:
            result = response.json()
        except ValueError as exc:
            raise UpstreamFailure("Photo storage answered with an unreadable response") from exc
        if not isinstance(result, dict) or not result.get("success") or not result.get("fileId"):
            message = result.get("error") if isinstance(result, dict) else None
            logger.error("Photo upload rejected for %s: %s", rental_id, message)
            raise UpstreamFailure(message or "Photo could not be processed")
        logger.info("Photo uploaded for %s: %s", rental_id, result["fileId"])
        return result["fileId"]
