"""
Mock worker directory.

In production, this would read worker profiles from the users collection
to find a worker's experience tier and home area.
"""

import logging
from typing import Optional, TypedDict

logger = logging.getLogger(__name__)

EXPERIENCE_TIERS = ("beginner", "intermediate", "expert", "master")


class WorkerRecord(TypedDict):
    """Worker profile fields the engine needs."""

    worker_id: str
    name: str
    experience_tier: str
    services: list[str]


_DEFAULT_WORKERS: dict[str, WorkerRecord] = {
    "W-1001": {
        "worker_id": "W-1001",
        "name": "Ravi Kumar",
        "experience_tier": "expert",
        "services": ["plumbing", "ac-repair"],
    },
    "W-1002": {
        "worker_id": "W-1002",
        "name": "Anita Sharma",
        "experience_tier": "intermediate",
        "services": ["home-cleaning"],
    },
    "W-1003": {
        "worker_id": "W-1003",
        "name": "Sandeep Singh",
        "experience_tier": "master",
        "services": ["electrical", "carpentry"],
    },
    "W-1004": {
        "worker_id": "W-1004",
        "name": "Meera Iyer",
        "experience_tier": "beginner",
        "services": ["home-cleaning", "carpentry"],
    },
}


class WorkerDirectory:
    """In-memory worker lookup."""

    def __init__(self, workers: Optional[dict[str, WorkerRecord]] = None) -> None:
        self._workers: dict[str, WorkerRecord] = dict(
            _DEFAULT_WORKERS if workers is None else workers
        )

    def get_worker(self, worker_id: str) -> Optional[WorkerRecord]:
        """Look up a worker. Returns None if not found."""
        return self._workers.get(worker_id)

    def add_worker(
        self, worker_id: str, name: str, experience_tier: str, services: Optional[list[str]] = None
    ) -> WorkerRecord:
        """Register a worker profile."""
        if experience_tier not in EXPERIENCE_TIERS:
            raise ValueError(f"Unknown experience tier: {experience_tier!r}")
        worker: WorkerRecord = {
            "worker_id": worker_id,
            "name": name,
            "experience_tier": experience_tier,
            "services": list(services or []),
        }
        self._workers[worker_id] = worker
        logger.info("Worker registered: %s (%s)", worker_id, experience_tier)
        return worker
