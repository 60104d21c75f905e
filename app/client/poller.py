"""Submit a label image and poll the analysis job until it settles.

Usage:
    label-scan path/to/label.png --base-url http://localhost:8001
"""

import argparse
import logging
import mimetypes
import os
import sys
import threading
from dataclasses import dataclass
from typing import Any, Dict, Optional

import requests

logger = logging.getLogger(__name__)

TIER_ORDER = ("high_risk", "moderate_risk", "healthy")
TIER_LABELS = {
    "high_risk": "HIGH RISK",
    "moderate_risk": "MODERATE RISK",
    "healthy": "HEALTHY",
}


class PollerError(RuntimeError):
    """Raised when the service rejects a submission or status check."""


@dataclass
class PollOutcome:
    status: str  # completed | failed | not_found | cancelled
    job_id: Optional[str] = None
    result: Optional[Dict[str, Any]] = None
    error: Optional[str] = None


def _error_message(response: requests.Response, default: str) -> str:
    try:
        return response.json().get("error") or default
    except ValueError:
        return default


class JobPoller:
    """Drives submit -> repeated status checks -> terminal outcome."""

    def __init__(
        self,
        base_url: str = "http://localhost:8001",
        interval: float = 2.0,
        timeout: float = 30.0,
        session: Optional[requests.Session] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.interval = interval
        self.timeout = timeout
        self._session = session or requests.Session()
        self._cancelled = threading.Event()

    def cancel(self) -> None:
        """Stop polling at the next wait; the server-side job keeps running."""
        self._cancelled.set()

    def submit(self, image_bytes: bytes, filename: str = "label.jpg",
               content_type: str = "image/jpeg") -> str:
        response = self._session.post(
            f"{self.base_url}/api/analyze",
            files={"image": (filename, image_bytes, content_type)},
            timeout=self.timeout,
        )
        if not response.ok:
            raise PollerError(_error_message(response, "Failed to start analysis"))
        return response.json()["jobId"]

    def check(self, job_id: str) -> Optional[Dict[str, Any]]:
        """Fetch the job record; None means the service no longer knows the job."""
        response = self._session.get(
            f"{self.base_url}/api/analyze/status",
            params={"jobId": job_id},
            timeout=self.timeout,
        )
        if response.status_code == 404:
            return None
        if not response.ok:
            raise PollerError(_error_message(response, "Failed to check analysis status"))
        return response.json()

    def wait(self, job_id: str) -> PollOutcome:
        while not self._cancelled.wait(self.interval):
            job = self.check(job_id)
            if job is None:
                return PollOutcome(
                    status="not_found",
                    job_id=job_id,
                    error="Analysis job not found - please try again",
                )
            status = job.get("status")
            if status == "completed":
                return PollOutcome(status=status, job_id=job_id, result=job.get("result"))
            if status == "failed":
                return PollOutcome(
                    status=status, job_id=job_id, error=job.get("error") or "Analysis failed"
                )
            logger.debug("Job %s still %s", job_id, status)
        return PollOutcome(status="cancelled", job_id=job_id)

    def run(self, image_bytes: bytes, filename: str = "label.jpg",
            content_type: str = "image/jpeg") -> PollOutcome:
        job_id = self.submit(image_bytes, filename, content_type)
        logger.info("Submitted job %s", job_id)
        return self.wait(job_id)


def render(outcome: PollOutcome) -> str:
    if outcome.status != "completed":
        return f"Analysis {outcome.status}: {outcome.error or 'no result'}"

    ingredients = (outcome.result or {}).get("ingredients", [])
    if not ingredients:
        return "No ingredients found."

    lines = []
    for tier in TIER_ORDER:
        items = [i for i in ingredients if i.get("classification") == tier]
        if not items:
            continue
        lines.append(f"== {TIER_LABELS[tier]} ({len(items)})")
        for item in items:
            lines.append(f"  {item['name']}: {item['explanation']}")
            for paper in item.get("papers", []):
                lines.append(f"    - {paper['title']} <{paper['url']}>")
    return "\n".join(lines)


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Analyze a nutrition label image")
    parser.add_argument("image", help="Path to the label image")
    parser.add_argument("--base-url", default=os.getenv("LABEL_API_URL", "http://localhost:8001"))
    parser.add_argument("--interval", type=float, default=2.0, help="Seconds between status checks")
    args = parser.parse_args(argv)

    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")

    with open(args.image, "rb") as fh:
        image_bytes = fh.read()

    poller = JobPoller(base_url=args.base_url, interval=args.interval)
    try:
        outcome = poller.run(
            image_bytes,
            filename=os.path.basename(args.image),
            content_type=mimetypes.guess_type(args.image)[0] or "image/jpeg",
        )
    except KeyboardInterrupt:
        poller.cancel()
        return 130
    except (PollerError, requests.RequestException) as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1

    print(render(outcome))
    return 0 if outcome.status == "completed" else 1


if __name__ == "__main__":
    sys.exit(main())
