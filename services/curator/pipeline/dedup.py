"""
Candidate normalization and cross-source deduplication.

The same park shows up in several discovery sources with spelling and
punctuation variance ("The Children's Museum", "childrens museum"). Each
mention is reduced to a NormalizedKey; the first record seen for a key wins
outright and later duplicates are discarded (no field merging).

Batches are merged in source-priority order, most trusted first:
  1. gemini          (search-grounded LLM)
  2. grok_x          (parent posts on X)
  3. grok_web        (neighborhood web search)
  4. grok_seasonal   (season-specific search)
  5. brave           (raw web search titles)
"""

import logging
import re
import unicodedata
from typing import Iterable, Mapping, Optional, Sequence

from services.curator.pipeline.types import CandidateRecord, DiscoverySource

logger = logging.getLogger(__name__)

SOURCE_PRIORITY: list[DiscoverySource] = [
    DiscoverySource.GEMINI,
    DiscoverySource.GROK_X,
    DiscoverySource.GROK_WEB,
    DiscoverySource.GROK_SEASONAL,
    DiscoverySource.BRAVE,
]

_LEADING_THE = re.compile(r"^\s*the\b[\W_]*")
_NON_ALNUM = re.compile(r"[^a-z0-9]")


# ---------------------------------------------------------------------------
# Key normalization
# ---------------------------------------------------------------------------

def strip_accents(text: str) -> str:
    """Remove combining marks after NFKD decomposition (e.g. e-acute -> e)."""
    nfkd = unicodedata.normalize("NFKD", text)
    return "".join(ch for ch in nfkd if unicodedata.category(ch)[0] != "M")


def normalize_key(name: str) -> str:
    """
    Reduce a display name to its dedup/lookup key.

    Steps:
      1. Fold accents (NFKD, drop combining marks)
      2. Lowercase
      3. Drop a leading word "the" (but not "Theodore")
      4. Strip everything outside [a-z0-9]
    """
    if not name:
        return ""
    text = strip_accents(name).lower()
    text = _LEADING_THE.sub("", text)
    return _NON_ALNUM.sub("", text)


# ---------------------------------------------------------------------------
# Merge
# ---------------------------------------------------------------------------

def merge_candidates(
    batches: Iterable[Iterable[CandidateRecord]],
) -> list[CandidateRecord]:
    """
    First-wins merge across batches already in priority order.

    Records whose key is empty (e.g. a name of only punctuation) are dropped.
    Output order is first-seen order. Pure and idempotent.
    """
    merged: list[CandidateRecord] = []
    seen: set[str] = set()
    dropped = 0

    for batch in batches:
        for record in batch:
            key = normalize_key(record.name)
            if not key or key in seen:
                dropped += 1
                continue
            seen.add(key)
            merged.append(record)

    if dropped:
        logger.debug("merge_candidates: kept %d, dropped %d", len(merged), dropped)
    return merged


def order_by_priority(
    results_by_source: Mapping[DiscoverySource, Sequence[CandidateRecord]],
    priority: Optional[Sequence[DiscoverySource]] = None,
) -> list[Sequence[CandidateRecord]]:
    """
    Arrange per-source batches by priority. Sources missing from the priority
    list keep their mapping order and go last.
    """
    priority = list(priority) if priority is not None else SOURCE_PRIORITY
    ordered = [results_by_source[s] for s in priority if s in results_by_source]
    ordered.extend(
        batch for source, batch in results_by_source.items() if source not in priority
    )
    return ordered


def merge_discovery_results(
    results_by_source: Mapping[DiscoverySource, Sequence[CandidateRecord]],
    priority: Optional[Sequence[DiscoverySource]] = None,
) -> list[CandidateRecord]:
    """Order source batches by priority, then merge first-wins."""
    merged = merge_candidates(order_by_priority(results_by_source, priority))
    logger.info(
        "Merged %d sources into %d unique candidates",
        len(results_by_source), len(merged),
    )
    return merged
