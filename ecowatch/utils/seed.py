"""
Demo data loader.

Seed files map collection → document id → document, the same layout the
Firestore console exports:

    {
      "users":   {"council-1": {"roles": ["council"], "email": "..."}},
      "reports": {"rpt-1": {"userId": "...", "title": "...", "createdAt": "2026-01-01T08:00:00Z", ...}}
    }

Report timestamps may be ISO strings; they are parsed through the Report model.
"""

import json
import logging
from typing import Any, Dict, List

from ecowatch.models.report import Report

logger = logging.getLogger(__name__)


def load_seed(path: str) -> Dict[str, Dict[str, Dict[str, Any]]]:
    with open(path, "r", encoding="utf-8") as f:
        return json.load(f)


def seed_reports(seed: Dict[str, Dict[str, Dict[str, Any]]]) -> List[Report]:
    """Validated reports from the seed; invalid entries are skipped with a warning."""
    reports = []
    for doc_id, data in (seed.get("reports") or {}).items():
        try:
            reports.append(Report.from_document(doc_id, data))
        except Exception as e:
            logger.warning(f"Skipping invalid seed report {doc_id}: {e}")
    return reports


def seed_memory(store, user_service, seed: Dict[str, Dict[str, Dict[str, Any]]]) -> int:
    """Load seed users and reports into the in-memory backends. Returns the report count."""
    for uid, profile in (seed.get("users") or {}).items():
        user_service.set_roles(uid, profile.get("roles") or [], email=profile.get("email"))

    reports = seed_reports(seed)
    store.load(reports)
    logger.info(f"Seeded {len(reports)} report(s) into the in-memory store")
    return len(reports)
