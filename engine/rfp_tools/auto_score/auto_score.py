"""
Supplier response auto-scoring.

AutoScoreEngine runs the per-supplier pipeline:

    RFP (company scoped) -> settings + catalog decode -> supplier answers
    -> score every requirement -> merge with stored buyer overrides -> save

and the batch run over every supplier on an RFP, where one supplier's
failure is logged, recorded and counted without stopping the others.

Each supplier's stored score set has a single writer at a time: scoring
runs and buyer override edits for the same (RFP, supplier) pair share one
asyncio.Lock. Store calls are blocking and go through asyncio.to_thread.
"""

import asyncio
import weakref
from typing import Any, Dict, List, Optional, Tuple

from rfp_utils.core.activity import (
    ActivityEvent,
    ActivityEventType,
    ActivitySink,
    record_activity,
)
from rfp_utils.core.clock import utc_timestamp
from rfp_utils.core.errors import (
    CatalogDecodeError,
    RFPNotFoundError,
    ScoringMatrixMissingError,
    SupplierResponseNotFoundError,
    _make_error_payload,
)
from rfp_utils.core.log import get_logger, pid_tool_logger, set_logger
from rfp_utils.db.score_store import ScoreStore, get_score_store
from rfp_tools.auto_score.ai_scoring import AISemanticScorer
from rfp_tools.auto_score.auto_score_models import (
    DEFAULT_SCORING_SETTINGS,
    BatchScoreSummary,
    RequirementDefinition,
    RequirementScore,
    ScoringSettings,
    decode_catalog,
    decode_requirement_scores,
    decode_scoring_settings,
    decode_supplier_answers,
    scores_to_json,
)
from rfp_tools.auto_score.override_merge import (
    apply_override as apply_override_to_scores,
    merge_with_existing_buyer_overrides,
    remove_override as remove_override_from_scores,
)
from rfp_tools.auto_score.requirement_scoring import (
    REQUIREMENT_CONCURRENCY,
    score_requirements,
)
from rfp_tools.auto_score.score_summary import effective_score

SUPPLIER_CONCURRENCY = 5
TOOL_NAME = "auto_score"


class AutoScoreEngine:
    def __init__(
        self,
        store: Optional[ScoreStore] = None,
        ai_scorer: Optional[AISemanticScorer] = None,
        activity: Optional[ActivitySink] = None,
        default_settings: ScoringSettings = DEFAULT_SCORING_SETTINGS,
        supplier_concurrency: int = SUPPLIER_CONCURRENCY,
        requirement_concurrency: int = REQUIREMENT_CONCURRENCY,
    ):
        self.store = store or get_score_store()
        self.activity = activity
        self.ai_scorer = ai_scorer or AISemanticScorer(activity=activity)
        self.default_settings = default_settings
        self.supplier_concurrency = supplier_concurrency
        self.requirement_concurrency = requirement_concurrency
        # entries vanish once no task holds or waits on the lock
        self._locks: "weakref.WeakValueDictionary[Tuple[str, str], asyncio.Lock]" = (
            weakref.WeakValueDictionary()
        )

    def _lock_for(self, rfp_id: str, supplier_id: str) -> asyncio.Lock:
        key = (rfp_id, supplier_id)
        lock = self._locks.get(key)
        if lock is None:
            lock = self._locks[key] = asyncio.Lock()
        return lock

    @staticmethod
    def _bind_logger(
        rfp_id: str,
        *,
        supplier_id: Optional[str] = None,
        user_id: Optional[str] = None,
        request_type: str,
        tool_name: str,
    ) -> None:
        set_logger(
            pid_tool_logger(rfp_id, TOOL_NAME),
            tool_name=tool_name,
            rfp_id=rfp_id or "unknown",
            supplier_id=supplier_id or "N/A",
            request_type=request_type,
            user_id=user_id or "system",
        )

    # ------------------------------------------------------------------ #
    # Lookups
    # ------------------------------------------------------------------ #
    async def _load_rfp(self, rfp_id: str, company_id: str) -> Dict[str, Any]:
        rfp = await asyncio.to_thread(self.store.get_rfp, rfp_id, company_id)
        if not rfp:
            raise RFPNotFoundError(rfp_id)
        return rfp

    async def _load_response(self, rfp_id: str, supplier_id: str) -> Dict[str, Any]:
        response = await asyncio.to_thread(
            self.store.get_supplier_response, rfp_id, supplier_id
        )
        if not response:
            raise SupplierResponseNotFoundError(rfp_id, supplier_id)
        return response

    @staticmethod
    def _catalog_of(rfp: Dict[str, Any]) -> List[RequirementDefinition]:
        snapshot = rfp.get("scoring_matrix_snapshot")
        if snapshot is None:
            raise ScoringMatrixMissingError(rfp["id"])
        if not isinstance(snapshot, dict):
            raise CatalogDecodeError("Scoring matrix snapshot must be an object")
        if snapshot.get("requirements") is None:
            raise ScoringMatrixMissingError(rfp["id"])
        return decode_catalog(snapshot["requirements"])

    # ------------------------------------------------------------------ #
    # Scoring
    # ------------------------------------------------------------------ #
    async def score_supplier_response(
        self,
        rfp_id: str,
        supplier_id: str,
        company_id: str,
        user_id: Optional[str] = None,
        *,
        request_type: str = "RUN",
    ) -> List[RequirementScore]:
        """
        Score one supplier's response and persist the merged score set.

        Raises an InputError subclass when the RFP, the scoring matrix or the
        response is missing, or when stored JSON fails to decode.
        """
        self._bind_logger(
            rfp_id,
            supplier_id=supplier_id,
            user_id=user_id,
            request_type=request_type,
            tool_name="score_supplier",
        )
        logger = get_logger()

        rfp = await self._load_rfp(rfp_id, company_id)
        settings = decode_scoring_settings(rfp.get("scoring_settings"), self.default_settings)
        catalog = self._catalog_of(rfp)

        async with self._lock_for(rfp_id, supplier_id):
            response = await self._load_response(rfp_id, supplier_id)
            answers = decode_supplier_answers(response.get("structured_answers"))
            existing = decode_requirement_scores(response.get("auto_score_json"))

            generated_at = utc_timestamp()
            fresh = await score_requirements(
                catalog,
                answers,
                settings,
                self.ai_scorer,
                generated_at=generated_at,
                concurrency=self.requirement_concurrency,
                rfp_id=rfp_id,
                supplier_response_id=response["id"],
            )
            merged = merge_with_existing_buyer_overrides(existing, fresh)
            await asyncio.to_thread(
                self.store.save_scores, response["id"], scores_to_json(merged), generated_at
            )

        kept = sum(1 for s in merged if s.buyer_override is not None)
        logger.info(
            f"Scored {len(merged)} requirements for supplier {supplier_id} "
            f"({kept} buyer overrides kept)"
        )
        record_activity(
            self.activity,
            ActivityEvent(
                event_type=ActivityEventType.AUTO_SCORE_RUN,
                summary=f"Auto-scoring completed for supplier {supplier_id}",
                actor_role="BUYER" if user_id else "SYSTEM",
                rfp_id=rfp_id,
                supplier_response_id=response["id"],
                user_id=user_id,
                details={
                    "supplierId": supplier_id,
                    "requirementCount": len(merged),
                    "overridesKept": kept,
                    "generatedAt": generated_at,
                },
            ),
        )
        return merged

    async def score_all_suppliers(
        self,
        rfp_id: str,
        company_id: str,
        user_id: Optional[str] = None,
        *,
        regenerate: bool = False,
    ) -> BatchScoreSummary:
        """
        Score every supplier response on the RFP.

        Only an unknown RFP raises; per-supplier failures are counted and
        returned in ``failures``.
        """
        request_type = "REGEN" if regenerate else "RUN"
        self._bind_logger(
            rfp_id, user_id=user_id, request_type=request_type, tool_name="score_all"
        )
        logger = get_logger()

        rfp = await self._load_rfp(rfp_id, company_id)
        supplier_ids = list(rfp.get("supplier_ids") or [])
        logger.info(f"Scoring {len(supplier_ids)} suppliers")

        sem = asyncio.Semaphore(self.supplier_concurrency)

        async def worker(supplier_id: str) -> Optional[dict]:
            async with sem:
                try:
                    await self.score_supplier_response(
                        rfp_id,
                        supplier_id,
                        company_id,
                        user_id,
                        request_type=request_type,
                    )
                    return None
                except Exception as e:
                    get_logger().error(f"Error scoring supplier {supplier_id}: {e}")
                    payload = _make_error_payload(
                        "score_supplier", e, {"supplierId": supplier_id}
                    )
                    record_activity(
                        self.activity,
                        ActivityEvent(
                            event_type=ActivityEventType.AUTO_SCORE_SUPPLIER_FAILED,
                            summary=f"Auto-scoring failed for supplier {supplier_id}",
                            rfp_id=rfp_id,
                            user_id=user_id,
                            details=payload,
                        ),
                    )
                    return payload

        results = await asyncio.gather(*(worker(sid) for sid in supplier_ids))
        failures = [r for r in results if r is not None]
        summary = BatchScoreSummary(
            total_suppliers=len(supplier_ids),
            success_count=len(supplier_ids) - len(failures),
            failure_count=len(failures),
            failures=failures,
        )

        logger.info(
            f"Batch scoring finished: {summary.success_count}/{summary.total_suppliers} ok"
        )
        record_activity(
            self.activity,
            ActivityEvent(
                event_type=(
                    ActivityEventType.AUTO_SCORE_REGENERATED
                    if regenerate
                    else ActivityEventType.AUTO_SCORE_RUN
                ),
                summary=(
                    "Auto-scores regenerated for all suppliers"
                    if regenerate
                    else "Auto-scoring completed for all suppliers"
                ),
                actor_role="BUYER" if user_id else "SYSTEM",
                rfp_id=rfp_id,
                user_id=user_id,
                details={
                    "totalSuppliers": summary.total_suppliers,
                    "successCount": summary.success_count,
                    "failureCount": summary.failure_count,
                },
            ),
        )
        return summary

    # ------------------------------------------------------------------ #
    # Buyer overrides
    # ------------------------------------------------------------------ #
    async def _edit_override(
        self,
        rfp_id: str,
        supplier_id: str,
        company_id: str,
        user_id: str,
        requirement_id: str,
        edit,
        action: str,
    ) -> RequirementScore:
        self._bind_logger(
            rfp_id,
            supplier_id=supplier_id,
            user_id=user_id,
            request_type="OVERRD",
            tool_name=f"{action}_override",
        )
        logger = get_logger()
        await self._load_rfp(rfp_id, company_id)

        async with self._lock_for(rfp_id, supplier_id):
            response = await self._load_response(rfp_id, supplier_id)
            scores = decode_requirement_scores(response.get("auto_score_json"))
            updated, before, after = edit(scores)
            await asyncio.to_thread(
                self.store.save_scores, response["id"], scores_to_json(updated), None
            )

        logger.info(
            f"Override {action} on {requirement_id}: "
            f"{effective_score(before)} -> {effective_score(after)}"
        )
        record_activity(
            self.activity,
            ActivityEvent(
                event_type=ActivityEventType.AUTO_SCORE_OVERRIDDEN,
                summary=f"Buyer override {action} for requirement {requirement_id}",
                actor_role="BUYER",
                rfp_id=rfp_id,
                supplier_response_id=response["id"],
                user_id=user_id,
                details={
                    "supplierId": supplier_id,
                    "requirementId": requirement_id,
                    "action": action,
                    "autoScore": after.auto_score.raw_score,
                    "before": effective_score(before),
                    "after": effective_score(after),
                    "overrideReason": (
                        after.buyer_override.override_reason if after.buyer_override else None
                    ),
                },
            ),
        )
        return after

    async def apply_override(
        self,
        rfp_id: str,
        supplier_id: str,
        company_id: str,
        user_id: str,
        requirement_id: str,
        override_score: float,
        override_reason: Optional[str] = None,
    ) -> RequirementScore:
        """Set or replace a buyer override on one stored requirement score."""
        return await self._edit_override(
            rfp_id,
            supplier_id,
            company_id,
            user_id,
            requirement_id,
            lambda scores: apply_override_to_scores(
                scores, requirement_id, override_score, user_id, override_reason
            ),
            "applied",
        )

    async def remove_override(
        self,
        rfp_id: str,
        supplier_id: str,
        company_id: str,
        user_id: str,
        requirement_id: str,
    ) -> RequirementScore:
        return await self._edit_override(
            rfp_id,
            supplier_id,
            company_id,
            user_id,
            requirement_id,
            lambda scores: remove_override_from_scores(scores, requirement_id),
            "removed",
        )


def main() -> bool:
    """
    Lightweight self-test for AutoScoreEngine:
      - In-memory store seeded with one RFP and one supplier
      - AI grading disabled so no network is used
      - Applies an override, re-scores, and checks the override survived
    """
    from rfp_utils.core.activity import MemoryActivitySink
    from rfp_utils.db.score_store import MockScoreStore

    print("AUTO_SCORE TEST START")
    try:
        store = MockScoreStore()
        store.add_rfp(
            "SELFTEST",
            "company-1",
            [
                {"id": "r1", "question": "Price per seat?", "scoringType": "numeric", "weight": 10},
                {"id": "r2", "question": "Is support 24/7?", "scoringType": "pass/fail",
                 "weight": 20, "mustHave": True},
                {"id": "r3", "question": "Describe onboarding", "weight": 70},
            ],
            {"aiEnabled": False},
        )
        store.add_supplier_response(
            "SELFTEST",
            "supplier-1",
            [
                {"requirementId": "r1", "response": "We propose $1,250 per seat"},
                {"requirementId": "r2", "response": "N/A"},
                {"requirementId": "r3", "response": "Dedicated onboarding manager for 90 days"},
            ],
        )

        sink = MemoryActivitySink()
        engine = AutoScoreEngine(store=store, activity=sink)

        async def run() -> bool:
            await engine.score_supplier_response("SELFTEST", "supplier-1", "company-1", "u1")
            await engine.apply_override(
                "SELFTEST", "supplier-1", "company-1", "u1", "r3", 85, "Strong plan"
            )
            scores = await engine.score_supplier_response(
                "SELFTEST", "supplier-1", "company-1", "u1"
            )
            by_id = {s.requirement_id: s for s in scores}
            return (
                by_id["r1"].auto_score.raw_score == 100
                and by_id["r2"].auto_score.failed_must_have
                and by_id["r3"].buyer_override is not None
                and by_id["r3"].buyer_override.override_score == 85
            )

        ok = asyncio.run(run())
        if ok:
            print("AUTO_SCORE OK")
            return True
        else:
            print("AUTO_SCORE FAIL: unexpected scores")
            return False

    except Exception as e:
        print(f"AUTO_SCORE ERROR: {e}")
        return False


if __name__ == "__main__":
    main()
