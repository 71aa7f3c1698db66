"""
Pydantic models for supplier response auto-scoring.

Every model reads and writes the camelCase JSON stored as ``autoScoreJson``
on a supplier response (snake_case field names are accepted on input too):

    RequirementScore
    ├── autoScore      (AutoScore, replaced on every scoring run)
    └── buyerOverride  (BuyerOverride, optional, only changed by a buyer)

Raw JSON from the catalog snapshot, the supplier's structured answers,
the RFP scoring settings and stored score sets must go through the
``decode_*`` helpers below. They fail closed with ``CatalogDecodeError``
instead of coercing malformed entries into something scoreable. The one
exception is a stored ``buyerOverride`` object: it is carried through
re-scoring exactly as stored.
"""

from __future__ import annotations

import copy
import math
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    PrivateAttr,
    ValidationError,
    field_validator,
    model_validator,
)

from rfp_utils.core.errors import CatalogDecodeError


class ScoringType(str, Enum):
    NUMERIC = "numeric"
    WEIGHTED = "weighted"
    PASS_FAIL = "pass_fail"
    QUALITATIVE = "qualitative"

    @classmethod
    def parse(cls, value: Any) -> "ScoringType":
        """Accept the catalog spellings (``pass/fail``, ``Pass-Fail``...)."""
        if isinstance(value, cls):
            return value
        if not isinstance(value, str):
            raise ValueError(f"scoring type must be a string, got {type(value).__name__}")
        key = value.strip().lower().replace("/", "_").replace("-", "_")
        try:
            return cls(key)
        except ValueError:
            raise ValueError(f"unknown scoring type '{value}'") from None


class ScoringMethod(str, Enum):
    NUMERIC = "numeric"
    WEIGHTED = "weighted"
    PASS_FAIL = "pass_fail"
    AI_SEMANTIC = "ai_semantic"


class MustHaveFailBehavior(str, Enum):
    ZERO_SCORE = "zero_score"
    DISQUALIFY = "disqualify"


def _drop_nulls(data: Any) -> Any:
    # null optional keys fall back to field defaults
    if isinstance(data, dict):
        return {k: v for k, v in data.items() if v is not None}
    return data


def _parse_scoring_type(value: Any) -> ScoringType:
    if value == "":
        return ScoringType.QUALITATIVE
    return ScoringType.parse(value)


class RequirementDefinition(BaseModel):
    """One scoring question from the RFP's frozen scoring matrix snapshot."""

    model_config = ConfigDict(populate_by_name=True, frozen=True, extra="ignore")

    id: str = Field(min_length=1, description="Requirement id, unique within the catalog")

    question_text: str = Field(
        default="",
        validation_alias=AliasChoices("question", "questionText", "question_text"),
        serialization_alias="question",
    )

    scoring_type: ScoringType = Field(
        default=ScoringType.QUALITATIVE,
        validation_alias=AliasChoices("scoringType", "scoring_type"),
        serialization_alias="scoringType",
    )

    weight_percent: float = Field(
        default=0,
        ge=0,
        le=100,
        validation_alias=AliasChoices("weight", "weightPercent", "weight_percent"),
        serialization_alias="weight",
    )

    must_have: bool = Field(
        default=False,
        validation_alias=AliasChoices("mustHave", "must_have"),
        serialization_alias="mustHave",
    )

    @model_validator(mode="before")
    @classmethod
    def _nulls_to_defaults(cls, data):
        return _drop_nulls(data)

    @field_validator("scoring_type", mode="before")
    @classmethod
    def _scoring_type(cls, v):
        return _parse_scoring_type(v)


class AutoScore(BaseModel):
    """Engine-owned result for one requirement. Recomputed on every run."""

    model_config = ConfigDict(populate_by_name=True, frozen=True, extra="ignore")

    raw_score: float = Field(ge=0, alias="rawScore")
    weighted_score: float = Field(ge=0, alias="weightedScore")
    failed_must_have: bool = Field(default=False, alias="failedMustHave")
    ai_reasoning: Optional[str] = Field(default=None, alias="aiReasoning")
    ai_confidence: Optional[float] = Field(default=None, ge=0, le=1, alias="aiConfidence")
    scoring_method: ScoringMethod = Field(alias="scoringMethod")
    generated_at: str = Field(alias="generatedAt")


class BuyerOverride(BaseModel):
    """
    Buyer-authored score that supersedes the auto score for display and totals.

    Overrides belong to the buyer review workflow. One read back from a stored
    score set keeps its stored mapping and is written back exactly as stored,
    whatever it holds; the typed fields are only a view for totals and events.
    New overrides are range-checked by ``apply_override``.
    """

    model_config = ConfigDict(populate_by_name=True, frozen=True, extra="allow")

    override_score: Any = Field(default=None, alias="overrideScore")
    override_reason: Any = Field(default=None, alias="overrideReason")
    overridden_at: Any = Field(default=None, alias="overriddenAt")
    overridden_by_user_id: Any = Field(default=None, alias="overriddenByUserId")

    _stored: Optional[Dict[str, Any]] = PrivateAttr(default=None)

    @classmethod
    def from_stored(cls, raw: Dict[str, Any]) -> "BuyerOverride":
        override = cls.model_validate(raw)
        override._stored = copy.deepcopy(raw)
        return override

    @property
    def score_value(self) -> Optional[float]:
        """The override score as a number, or None when the stored value isn't one."""
        value = self.override_score
        if isinstance(value, bool):
            return None
        if isinstance(value, str):
            try:
                value = float(value)
            except ValueError:
                return None
        if isinstance(value, (int, float)) and math.isfinite(value):
            return value
        return None

    def to_dict(self) -> Dict[str, Any]:
        if self._stored is not None:
            return copy.deepcopy(self._stored)
        return self.model_dump(mode="json", by_alias=True)


class RequirementScore(BaseModel):
    """The unit persisted per requirement per supplier response."""

    model_config = ConfigDict(populate_by_name=True, frozen=True, extra="ignore")

    requirement_id: str = Field(min_length=1, alias="requirementId")
    question_text: str = Field(
        default="",
        validation_alias=AliasChoices("question", "questionText", "question_text"),
        serialization_alias="question",
    )
    scoring_type: ScoringType = Field(
        default=ScoringType.QUALITATIVE,
        validation_alias=AliasChoices("scoringType", "scoring_type"),
        serialization_alias="scoringType",
    )
    weight: float = Field(default=0, ge=0, le=100)
    must_have: bool = Field(
        default=False,
        validation_alias=AliasChoices("mustHave", "must_have"),
        serialization_alias="mustHave",
    )
    supplier_answer_text: str = Field(
        default="",
        validation_alias=AliasChoices(
            "supplierResponseText", "supplierAnswerText", "supplier_answer_text"
        ),
        serialization_alias="supplierResponseText",
    )
    auto_score: AutoScore = Field(
        validation_alias=AliasChoices("autoScore", "auto_score"),
        serialization_alias="autoScore",
    )
    buyer_override: Optional[BuyerOverride] = Field(
        default=None,
        validation_alias=AliasChoices("buyerOverride", "buyer_override"),
        serialization_alias="buyerOverride",
    )

    @field_validator("scoring_type", mode="before")
    @classmethod
    def _scoring_type(cls, v):
        if v is None:
            return ScoringType.QUALITATIVE
        return _parse_scoring_type(v)

    @field_validator("buyer_override", mode="before")
    @classmethod
    def _stored_override(cls, v):
        if isinstance(v, dict):
            return BuyerOverride.from_stored(v)
        return v

    def to_dict(self) -> Dict[str, Any]:
        """camelCase JSON-ready dict; absent optionals are omitted, overrides go out as stored."""
        data = self.model_dump(
            mode="json", by_alias=True, exclude_none=True, exclude={"buyer_override"}
        )
        if self.buyer_override is not None:
            data["buyerOverride"] = self.buyer_override.to_dict()
        return data


class ScoringSettings(BaseModel):
    """Per-RFP scoring policy. rule/ai weighting are carried but not applied."""

    model_config = ConfigDict(populate_by_name=True, frozen=True, extra="ignore")

    ai_enabled: bool = Field(default=True, alias="aiEnabled")
    rule_weighting: float = Field(default=0.6, ge=0, le=1, alias="ruleWeighting")
    ai_weighting: float = Field(default=0.4, ge=0, le=1, alias="aiWeighting")
    must_have_fail_behavior: MustHaveFailBehavior = Field(
        default=MustHaveFailBehavior.ZERO_SCORE, alias="mustHaveFailBehavior"
    )
    scoring_scale: float = Field(default=100, gt=0, alias="scoringScale")


DEFAULT_SCORING_SETTINGS = ScoringSettings()


class AIScoreResult(BaseModel):
    """Outcome of one AI grading call; ``degraded`` marks the failure fallback."""

    model_config = ConfigDict(frozen=True)

    raw_score: float
    reasoning: str
    confidence: float
    model: Optional[str] = None
    degraded: bool = False


class BatchScoreSummary(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    total_suppliers: int = Field(default=0, alias="totalSuppliers")
    success_count: int = Field(default=0, alias="successCount")
    failure_count: int = Field(default=0, alias="failureCount")
    failures: List[Dict[str, Any]] = Field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True)


# --------------------------------------------------------------------------- #
# Decoders
# --------------------------------------------------------------------------- #
def _first_error(e: ValidationError) -> str:
    err = e.errors()[0]
    loc = ".".join(str(p) for p in err.get("loc", ())) or "entry"
    return f"{loc}: {err.get('msg')}"


def decode_catalog(raw: Any) -> List[RequirementDefinition]:
    """Decode ``scoringMatrixSnapshot.requirements`` into ordered definitions."""
    if not isinstance(raw, list):
        raise CatalogDecodeError(
            f"Requirement catalog must be a list, got {type(raw).__name__}"
        )

    catalog: List[RequirementDefinition] = []
    seen: set[str] = set()
    for i, entry in enumerate(raw):
        if not isinstance(entry, dict):
            raise CatalogDecodeError(f"Requirement #{i} is not an object")
        try:
            req = RequirementDefinition.model_validate(entry)
        except ValidationError as e:
            raise CatalogDecodeError(f"Requirement #{i} is invalid ({_first_error(e)})") from e
        if req.id in seen:
            raise CatalogDecodeError(f"Duplicate requirement id '{req.id}'")
        seen.add(req.id)
        catalog.append(req)
    return catalog


def decode_supplier_answers(raw: Any) -> Dict[str, str]:
    """
    Decode structured answers into ``requirement_id -> answer text``.

    Accepts the stored list form ``[{"requirementId", "response"}]`` or a plain
    mapping. A missing or null response is an absent answer (empty text).
    """
    if raw is None:
        return {}

    if isinstance(raw, dict):
        pairs = list(raw.items())
    elif isinstance(raw, list):
        pairs = []
        for i, entry in enumerate(raw):
            if not isinstance(entry, dict):
                raise CatalogDecodeError(f"Answer #{i} is not an object")
            req_id = entry.get("requirementId", entry.get("requirement_id"))
            if not isinstance(req_id, str) or not req_id:
                raise CatalogDecodeError(f"Answer #{i} has no requirementId")
            pairs.append((req_id, entry.get("response", entry.get("answerText"))))
    else:
        raise CatalogDecodeError(
            f"Supplier answers must be a list or object, got {type(raw).__name__}"
        )

    answers: Dict[str, str] = {}
    for req_id, text in pairs:
        if req_id in answers:
            raise CatalogDecodeError(f"Duplicate answer for requirement '{req_id}'")
        if text is None:
            text = ""
        if not isinstance(text, str):
            raise CatalogDecodeError(f"Answer for requirement '{req_id}' is not text")
        answers[req_id] = text
    return answers


def decode_scoring_settings(
    raw: Any, defaults: ScoringSettings = DEFAULT_SCORING_SETTINGS
) -> ScoringSettings:
    """Absent settings resolve to ``defaults``; partial settings are filled from it."""
    if raw is None:
        return defaults
    if not isinstance(raw, dict):
        raise CatalogDecodeError(
            f"Scoring settings must be an object, got {type(raw).__name__}"
        )
    try:
        given = ScoringSettings.model_validate(_drop_nulls(raw))
    except ValidationError as e:
        raise CatalogDecodeError(f"Invalid scoring settings ({_first_error(e)})") from e
    return defaults.model_copy(
        update={name: getattr(given, name) for name in given.model_fields_set}
    )


def decode_requirement_scores(raw: Any) -> List[RequirementScore]:
    """Decode a stored ``autoScoreJson`` list. ``None`` means never scored."""
    if raw is None:
        return []
    if not isinstance(raw, list):
        raise CatalogDecodeError(
            f"Stored scores must be a list, got {type(raw).__name__}"
        )

    scores: List[RequirementScore] = []
    seen: set[str] = set()
    for i, entry in enumerate(raw):
        if not isinstance(entry, dict):
            raise CatalogDecodeError(f"Stored score #{i} is not an object")
        try:
            score = RequirementScore.model_validate(entry)
        except ValidationError as e:
            raise CatalogDecodeError(f"Stored score #{i} is invalid ({_first_error(e)})") from e
        if score.requirement_id in seen:
            raise CatalogDecodeError(
                f"Duplicate stored score for requirement '{score.requirement_id}'"
            )
        seen.add(score.requirement_id)
        scores.append(score)
    return scores


def scores_to_json(scores: List[RequirementScore]) -> List[Dict[str, Any]]:
    return [s.to_dict() for s in scores]
