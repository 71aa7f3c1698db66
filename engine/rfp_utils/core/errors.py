from rfp_utils.core.clock import utc_timestamp


class AutoScoreError(Exception):
    """Base class for scoring engine failures."""


class InputError(AutoScoreError):
    """Missing or malformed input; fatal to the single operation invoked."""


class RFPNotFoundError(InputError):
    def __init__(self, rfp_id: str):
        super().__init__("RFP not found or access denied")
        self.rfp_id = rfp_id


class SupplierResponseNotFoundError(InputError):
    def __init__(self, rfp_id: str, supplier_id: str):
        super().__init__("Supplier response not found")
        self.rfp_id = rfp_id
        self.supplier_id = supplier_id


class ScoringMatrixMissingError(InputError):
    def __init__(self, rfp_id: str):
        super().__init__("Scoring matrix not configured for this RFP")
        self.rfp_id = rfp_id


class CatalogDecodeError(InputError):
    """A catalog, answer set, settings object or stored score set failed to decode."""


class RequirementNotFoundError(InputError):
    def __init__(self, requirement_id: str):
        super().__init__(f"No stored score for requirement {requirement_id}")
        self.requirement_id = requirement_id


def _make_error_payload(
    stage: str, err: Exception | str, extra: dict | None = None
) -> dict:
    msg = str(err)
    base = {
        "status": "error",
        "error": msg,
        "errorType": type(err).__name__ if isinstance(err, Exception) else "str",
        "stage": stage,
        "timestamp": utc_timestamp(),
    }
    if extra:
        base.update(extra)
    return base
