"""Consistency diagnostics — proves the invariants the retrieval path relies on.

Every check returns a typed result that tests and tooling can inspect.
The ``assert_*`` variants raise the matching domain error instead, with
enough detail (ids, lengths, diffs) to act on without a debugging session.

None of this runs while serving queries.
"""

import logging
import math
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Any

from knowledge_engine.application.interfaces.record_store import RecordStore
from knowledge_engine.domain.entities import RankedRecord
from knowledge_engine.domain.exceptions import (
    EmbeddingDimensionError,
    EmbeddingFormatError,
    MixedDimensionError,
    RankingDisagreementError,
)
from knowledge_engine.domain.filters import MetadataFilter, coerce_filter
from knowledge_engine.domain.ranking import SELF_IDENTITY_TOLERANCE, rank_all
from knowledge_engine.domain.vectors import format_embedding, parse_embedding, vector_norm

logger = logging.getLogger(__name__)

# Scores closer than this are treated as ties (pgvector stores float32).
RANKING_TOLERANCE = 1e-6
_UNIT_NORM_TOLERANCE = 0.01


# ── Result types ─────────────────────────────────────────────────────


@dataclass(frozen=True)
class FormatEquivalence:
    """Native vs. textual parse of the same vector."""

    native: tuple[float, ...]
    textual: tuple[float, ...]
    max_abs_difference: float

    @property
    def ok(self) -> bool:
        return len(self.native) == len(self.textual) and self.max_abs_difference == 0.0


@dataclass(frozen=True)
class DimensionReport:
    """Stored record ids grouped by embedding length."""

    expected: int
    ids_by_length: dict[int, list[int]]

    @property
    def lengths(self) -> list[int]:
        return sorted(self.ids_by_length)

    @property
    def offending_ids(self) -> list[int]:
        return sorted(
            record_id
            for length, ids in self.ids_by_length.items()
            if length != self.expected
            for record_id in ids
        )

    @property
    def ok(self) -> bool:
        return not self.offending_ids


@dataclass(frozen=True)
class NormalizationInfo:
    """Magnitude profile of one vector; informational only."""

    dimensions: int
    norm: float
    min_component: float
    max_component: float

    @property
    def is_unit_normalized(self) -> bool:
        return abs(self.norm - 1.0) < _UNIT_NORM_TOLERANCE


@dataclass(frozen=True)
class RankingComparison:
    """Diff between the brute-force and store-side rankings of one query."""

    brute_force_ids: list[int]
    store_ids: list[int]
    missing_from_store: list[int] = field(default_factory=list)
    unexpected_in_store: list[int] = field(default_factory=list)
    order_mismatches: list[tuple[int, int]] = field(default_factory=list)
    filter_pushdown_mismatch: list[int] = field(default_factory=list)
    tolerated_ids: list[int] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not (
            self.missing_from_store
            or self.unexpected_in_store
            or self.order_mismatches
            or self.filter_pushdown_mismatch
        )

    def describe(self) -> str:
        parts = [f"brute_force={self.brute_force_ids}", f"store={self.store_ids}"]
        if self.missing_from_store:
            parts.append(f"missing_from_store={self.missing_from_store}")
        if self.unexpected_in_store:
            parts.append(f"unexpected_in_store={self.unexpected_in_store}")
        if self.order_mismatches:
            parts.append(f"order_mismatches={self.order_mismatches}")
        if self.filter_pushdown_mismatch:
            parts.append(f"filter_pushdown_mismatch={self.filter_pushdown_mismatch}")
        return ", ".join(parts)


@dataclass(frozen=True)
class SelfIdentityResult:
    record_id: int
    found: bool
    similarity: float | None

    @property
    def ok(self) -> bool:
        return (
            self.found
            and self.similarity is not None
            and self.similarity >= 1.0 - SELF_IDENTITY_TOLERANCE
        )


# ── Vector-only checks ───────────────────────────────────────────────


def check_format_equivalence(vector: Any) -> FormatEquivalence:
    """Parse a vector natively and via its bracketed text; compare."""
    native = parse_embedding(vector)
    textual = parse_embedding(format_embedding(native))
    if len(native) != len(textual):
        difference = math.inf
    else:
        difference = max((abs(a - b) for a, b in zip(native, textual)), default=0.0)
    return FormatEquivalence(native=native, textual=textual, max_abs_difference=difference)


def assert_format_equivalence(vector: Any) -> FormatEquivalence:
    result = check_format_equivalence(vector)
    if not result.ok:
        raise EmbeddingFormatError(
            f"Textual and native encodings differ (max |Δ| = {result.max_abs_difference})"
        )
    return result


def normalization_info(vector: Any) -> NormalizationInfo:
    components = parse_embedding(vector)
    return NormalizationInfo(
        dimensions=len(components),
        norm=vector_norm(components),
        min_component=min(components),
        max_component=max(components),
    )


def assert_normalization_info(vector: Any) -> NormalizationInfo:
    """Report magnitude statistics; never fails on magnitude alone."""
    info = normalization_info(vector)
    logger.info(
        "Vector profile: dims=%d norm=%.6f range=[%.4f, %.4f] unit=%s",
        info.dimensions,
        info.norm,
        info.min_component,
        info.max_component,
        info.is_unit_normalized,
    )
    return info


def compare_rankings(
    expected: list[RankedRecord],
    actual: list[RankedRecord],
    *,
    threshold: float,
    max_results: int,
    tolerance: float = RANKING_TOLERANCE,
) -> RankingComparison:
    """Diff two rankings, forgiving differences that are pure floating-point noise.

    A record present on one side only is tolerated when its score is within
    ``tolerance`` of the threshold, or of the last score on the other side
    when that side is full. Two records in opposite order are tolerated when
    their scores are within ``tolerance`` of each other. Exactly equal
    scores are never noise: ascending id must decide them.
    """
    expected_ids = [r.id for r in expected]
    actual_ids = [r.id for r in actual]
    if expected_ids == actual_ids:
        return RankingComparison(brute_force_ids=expected_ids, store_ids=actual_ids)

    expected_scores = {r.id: r.similarity for r in expected}
    actual_scores = {r.id: r.similarity for r in actual}

    def near_edge(
        record_id: int, score: float, other: list[RankedRecord], from_expected: bool
    ) -> bool:
        if abs(score - threshold) <= tolerance:
            return True
        if not other or len(other) < max_results:
            return False
        edge = other[-1]
        if score == edge.similarity:
            # Exact tie with the last admitted record.
            return record_id > edge.id if from_expected else record_id < edge.id
        return abs(score - edge.similarity) <= tolerance

    tolerated: list[int] = []
    missing: list[int] = []
    for record_id in expected_ids:
        if record_id in actual_scores:
            continue
        if near_edge(record_id, expected_scores[record_id], actual, from_expected=True):
            tolerated.append(record_id)
        else:
            missing.append(record_id)

    unexpected: list[int] = []
    for record_id in actual_ids:
        if record_id in expected_scores:
            continue
        if near_edge(record_id, actual_scores[record_id], expected, from_expected=False):
            tolerated.append(record_id)
        else:
            unexpected.append(record_id)

    common = [i for i in expected_ids if i in actual_scores]
    actual_position = {record_id: pos for pos, record_id in enumerate(actual_ids)}
    mismatches: list[tuple[int, int]] = []
    for i, first in enumerate(common):
        for second in common[i + 1 :]:
            if actual_position[first] < actual_position[second]:
                continue
            if actual_scores[first] == actual_scores[second]:
                if first < second:
                    mismatches.append((first, second))
            elif abs(expected_scores[first] - expected_scores[second]) > tolerance:
                mismatches.append((first, second))

    return RankingComparison(
        brute_force_ids=expected_ids,
        store_ids=actual_ids,
        missing_from_store=missing,
        unexpected_in_store=unexpected,
        order_mismatches=mismatches,
        tolerated_ids=sorted(tolerated),
    )


# ── Store checks ─────────────────────────────────────────────────────


class ConsistencyDiagnostics:
    """Store-level verification routines."""

    def __init__(self, record_store: RecordStore, *, tolerance: float = RANKING_TOLERANCE):
        self._store = record_store
        self._tolerance = tolerance

    async def check_dimension_invariant(self) -> DimensionReport:
        records = await self._store.fetch_all()
        ids_by_length: dict[int, list[int]] = defaultdict(list)
        for record in records:
            ids_by_length[len(record.embedding)].append(record.id)
        return DimensionReport(expected=self._store.dimensions, ids_by_length=dict(ids_by_length))

    async def assert_dimension_invariant(self) -> DimensionReport:
        report = await self.check_dimension_invariant()
        if len(report.ids_by_length) > 1:
            logger.error("Mixed-dimension corpus: %s", report.ids_by_length)
            raise MixedDimensionError(report.expected, report.ids_by_length)
        if not report.ok:
            (length,) = report.lengths
            raise EmbeddingDimensionError(
                report.expected,
                length,
                record_id=report.offending_ids[0],
                context=f"corpus of {len(report.offending_ids)} record(s)",
            )
        return report

    async def check_ranking_agreement(
        self,
        query: Any,
        threshold: float,
        max_results: int,
        metadata_filter: MetadataFilter | dict[str, Any] | None = None,
    ) -> RankingComparison:
        """Run both ranking paths for one query and diff them.

        The brute-force side scans every record and applies the filter in
        Python, so a store that filters wrongly in SQL cannot agree with
        itself by accident.
        """
        predicate = coerce_filter(metadata_filter)
        everything = await self._store.fetch_all()
        brute_force = rank_all(query, everything, threshold, max_results, predicate)
        store_side = await self._store.rank(query, threshold, max_results, predicate)

        comparison = compare_rankings(
            brute_force,
            store_side,
            threshold=threshold,
            max_results=max_results,
            tolerance=self._tolerance,
        )

        pushdown_mismatch: list[int] = []
        if not predicate.is_empty:
            expected_ids = {r.id for r in everything if predicate.matches(r.metadata)}
            pushed_ids = {r.id for r in await self._store.fetch_all(predicate)}
            pushdown_mismatch = sorted(expected_ids ^ pushed_ids)

        if pushdown_mismatch:
            comparison = RankingComparison(
                brute_force_ids=comparison.brute_force_ids,
                store_ids=comparison.store_ids,
                missing_from_store=comparison.missing_from_store,
                unexpected_in_store=comparison.unexpected_in_store,
                order_mismatches=comparison.order_mismatches,
                filter_pushdown_mismatch=pushdown_mismatch,
                tolerated_ids=comparison.tolerated_ids,
            )
        return comparison

    async def assert_ranking_agreement(
        self,
        query: Any,
        threshold: float,
        max_results: int,
        metadata_filter: MetadataFilter | dict[str, Any] | None = None,
    ) -> RankingComparison:
        comparison = await self.check_ranking_agreement(
            query, threshold, max_results, metadata_filter
        )
        if not comparison.ok:
            logger.error("Ranking disagreement: %s", comparison.describe())
            raise RankingDisagreementError(comparison)
        return comparison

    async def check_self_identity(self, record_id: int) -> SelfIdentityResult:
        record = await self._store.get(record_id)
        if record is None:
            return SelfIdentityResult(record_id=record_id, found=False, similarity=None)

        total = max(1, await self._store.count())
        ranked = await self._store.rank(record.embedding, 0.0, total)
        for item in ranked:
            if item.id == record_id:
                return SelfIdentityResult(
                    record_id=record_id, found=True, similarity=item.similarity
                )
        return SelfIdentityResult(record_id=record_id, found=False, similarity=None)

    async def assert_self_identity(self, record_id: int) -> SelfIdentityResult:
        result = await self.check_self_identity(record_id)
        if not result.ok:
            comparison = RankingComparison(
                brute_force_ids=[record_id],
                store_ids=[],
                missing_from_store=[record_id],
            )
            raise RankingDisagreementError(comparison)
        return result
