"""
HTTP uploader for experiment results.

Posts the four artifacts of a completed experiment as a multipart form to the
result server. The form carries the upload code plus one file part per
artifact kind (knobs, metrics_before, metrics_after, summary).
"""

import logging
import time
from contextlib import ExitStack

import requests

from .errors import UploadError, UploadRejectedError, UploadUnavailableError
from .models import ResultArtifactSet

logger = logging.getLogger(__name__)


class ResultUploader:
    """
    Client for uploading a ResultArtifactSet.

    This client provides:
    - Multipart upload of the four artifacts
    - Retries on connection errors, timeouts and 5xx responses
    - No retry on 4xx responses (bad code or rejected files)
    """

    def __init__(
        self,
        timeout: float = 30.0,
        max_retries: int = 3,
        retry_delay: float = 1.0,
        session: requests.Session = None,
    ):
        """
        Initialize uploader.

        Args:
            timeout: Request timeout in seconds (default: 30)
            max_retries: Maximum attempts for transient errors (default: 3)
            retry_delay: Delay between attempts in seconds (default: 1.0)
            session: Optional requests session (a new one is created otherwise)
        """
        self.timeout = timeout
        self.max_retries = max(1, max_retries)
        self.retry_delay = retry_delay
        self.session = session or requests.Session()

    def upload(self, artifacts: ResultArtifactSet, upload_url: str, upload_code: str) -> str:
        """
        Upload a finalized artifact set.

        Args:
            artifacts: Finalized set holding exactly the four expected artifacts
            upload_url: Result server endpoint
            upload_code: Authorization code for the target session

        Returns:
            Response body text

        Raises:
            UploadError: Artifact set not finalized/complete, or unexpected failure
            UploadRejectedError: Server answered 4xx
            UploadUnavailableError: Server unreachable after all attempts
        """
        if not artifacts.finalized or not artifacts.is_complete():
            raise UploadError(f"Refusing to upload incomplete artifact set: {artifacts!r}")

        for attempt in range(self.max_retries):
            try:
                with ExitStack() as stack:
                    files = {
                        name: (path.name, stack.enter_context(open(path, "rb")), "application/json")
                        for name, path in artifacts.items()
                    }
                    response = self.session.post(
                        upload_url,
                        data={"upload_code": upload_code},
                        files=files,
                        timeout=self.timeout,
                    )

                if response.status_code < 400:
                    logger.info(f"Uploaded results to {upload_url}: {response.status_code}")
                    return response.text

                if response.status_code < 500:
                    logger.error(
                        f"Upload rejected ({response.status_code}): {response.text[:500]}"
                    )
                    raise UploadRejectedError(
                        f"Upload rejected with HTTP {response.status_code}: {response.text[:500]}"
                    )

                response.raise_for_status()

            except (requests.exceptions.ConnectionError,
                    requests.exceptions.Timeout,
                    requests.exceptions.HTTPError) as e:
                if attempt < self.max_retries - 1:
                    logger.warning(
                        f"Upload error (attempt {attempt + 1}/{self.max_retries}): {e}"
                    )
                    time.sleep(self.retry_delay)
                    continue
                logger.error(f"Upload failed after {self.max_retries} attempts: {e}")
                raise UploadUnavailableError(f"Cannot upload results to {upload_url}") from e

            # RequestException subclasses OSError, so it must be caught first
            except requests.exceptions.RequestException as e:
                logger.error(f"Unexpected error uploading results: {e}")
                raise UploadError(f"Unexpected upload error: {e}") from e

            except OSError as e:
                raise UploadError(f"Cannot read artifact for upload: {e}") from e

        # Should not reach here
        raise UploadUnavailableError(f"Failed to upload results after {self.max_retries} attempts")

    def close(self):
        """Close the HTTP session."""
        self.session.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False
