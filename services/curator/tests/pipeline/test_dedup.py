"""
Tests for candidate normalization and cross-source dedup.

Covers:
- normalize_key folding (accents, case, punctuation, leading "the")
- First-wins merge across prioritized batches
- Idempotence and key uniqueness of merged output
- Source priority ordering, including unknown sources
"""

import pytest

from services.curator.pipeline.dedup import (
    SOURCE_PRIORITY,
    merge_candidates,
    merge_discovery_results,
    normalize_key,
    order_by_priority,
)
from services.curator.pipeline.types import DiscoverySource, PlaceCategory
from services.curator.tests.helpers.factories import make_candidate


# ---------------------------------------------------------------------------
# normalize_key
# ---------------------------------------------------------------------------

class TestNormalizeKey:
    @pytest.mark.parametrize("name,expected", [
        ("Central Library", "centrallibrary"),
        ("central-library", "centrallibrary"),
        ("CENTRAL  LIBRARY!!", "centrallibrary"),
        ("The Children's Museum", "childrensmuseum"),
        ("the-children's museum", "childrensmuseum"),
        ("Café Olé", "cafeole"),
    ])
    def test_variants_collapse(self, name, expected):
        assert normalize_key(name) == expected

    def test_leading_the_only_as_a_word(self):
        assert normalize_key("Theodore Roosevelt Park") == "theodorerooseveltpark"

    def test_the_in_middle_is_kept(self):
        assert normalize_key("Over the Rainbow Play") == "overtherainbowplay"

    def test_empty_and_punctuation_only(self):
        assert normalize_key("") == ""
        assert normalize_key("!!! ---") == ""


# ---------------------------------------------------------------------------
# merge_candidates
# ---------------------------------------------------------------------------

class TestMergeCandidates:
    def test_empty_input(self):
        assert merge_candidates([]) == []
        assert merge_candidates([[], []]) == []

    def test_high_priority_fields_win(self):
        high = make_candidate(
            "Central Library",
            source=DiscoverySource.GEMINI,
            snippet="Main branch with storytime",
            category=PlaceCategory.LIBRARY,
        )
        low = make_candidate(
            "central-library",
            source=DiscoverySource.BRAVE,
            snippet="Search result",
            category=PlaceCategory.MUSEUM,
        )

        merged = merge_candidates([[high], [low]])

        assert merged == [high]
        assert merged[0].source == DiscoverySource.GEMINI
        assert merged[0].snippet == "Main branch with storytime"

    def test_first_seen_order(self):
        a, b, c = make_candidate("A Park"), make_candidate("B Farm"), make_candidate("C Museum")
        merged = merge_candidates([[b, a], [c, make_candidate("a park")]])
        assert [r.name for r in merged] == ["B Farm", "A Park", "C Museum"]

    def test_duplicates_within_one_batch(self):
        merged = merge_candidates([[make_candidate("Holmes Lake"), make_candidate("HOLMES LAKE")]])
        assert [r.name for r in merged] == ["Holmes Lake"]

    def test_empty_key_records_dropped(self):
        merged = merge_candidates([[make_candidate("???"), make_candidate("Holmes Lake")]])
        assert [r.name for r in merged] == ["Holmes Lake"]

    def test_idempotent_and_unique(self):
        batches = [
            [make_candidate("The Zoo"), make_candidate("Zoo"), make_candidate("Lakeside")],
            [make_candidate("lakeside"), make_candidate("Orchard")],
        ]
        once = merge_candidates(batches)
        twice = merge_candidates([once])

        assert twice == once
        keys = [normalize_key(r.name) for r in once]
        assert len(keys) == len(set(keys))


# ---------------------------------------------------------------------------
# Priority ordering
# ---------------------------------------------------------------------------

class TestSourcePriority:
    def test_priority_list(self):
        assert SOURCE_PRIORITY[0] == DiscoverySource.GEMINI
        assert SOURCE_PRIORITY[-1] == DiscoverySource.BRAVE

    def test_mapping_order_does_not_matter(self):
        brave = make_candidate("central-library", source=DiscoverySource.BRAVE)
        gemini = make_candidate("Central Library", source=DiscoverySource.GEMINI)

        merged = merge_discovery_results({
            DiscoverySource.BRAVE: [brave],
            DiscoverySource.GEMINI: [gemini],
        })

        assert merged == [gemini]

    def test_unknown_sources_go_last(self):
        manual = [make_candidate("Manual Spot", source=DiscoverySource.MANUAL)]
        grok = [make_candidate("Grok Spot", source=DiscoverySource.GROK_X)]

        ordered = order_by_priority({DiscoverySource.MANUAL: manual, DiscoverySource.GROK_X: grok})

        assert ordered == [grok, manual]

    def test_custom_priority(self):
        brave = make_candidate("Sunken Gardens", source=DiscoverySource.BRAVE, snippet="brave")
        gemini = make_candidate("Sunken Gardens", source=DiscoverySource.GEMINI, snippet="gemini")

        merged = merge_discovery_results(
            {DiscoverySource.GEMINI: [gemini], DiscoverySource.BRAVE: [brave]},
            priority=[DiscoverySource.BRAVE, DiscoverySource.GEMINI],
        )

        assert merged[0].snippet == "brave"
