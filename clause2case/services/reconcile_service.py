"""
Clause2Case
Merge/Dedup Reconciler.

Combines the working set of test cases with an authoritative manual batch
(e.g. the result of a CSV upload) without duplicates:

    - entries whose id appears in the authoritative batch are replaced
    - entries with source "manual" are dropped, since the authoritative
      batch is the complete manual set
    - everything else is kept in its original order, followed by the
      authoritative entries in the order given
"""

import logging

logger = logging.getLogger(__name__)


def _field(entry, name):
    if isinstance(entry, dict):
        return entry.get(name)
    return getattr(entry, name, None)


def reconcile(existing, authoritative) -> list:
    """Return the merged list; neither input is modified."""
    authoritative = list(authoritative or [])
    authoritative_ids = {_field(tc, "id") for tc in authoritative}
    authoritative_ids.discard(None)

    kept = [
        tc for tc in (existing or [])
        if _field(tc, "source") != "manual" and _field(tc, "id") not in authoritative_ids
    ]
    dropped = len(existing or []) - len(kept)
    logger.debug("Reconcile kept %d, dropped %d, added %d authoritative",
                 len(kept), dropped, len(authoritative))
    return kept + authoritative
