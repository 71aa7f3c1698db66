"""
Score persistence for the auto-scoring engine.

The engine reads an RFP (company-scoped) with its frozen scoring matrix and
settings, reads one supplier response (structured answers + prior score set),
and writes back the merged score set with its generation timestamp.

Records are plain dicts, mirroring the row shape:
- rfp: id, company_id, scoring_matrix_snapshot, scoring_settings, supplier_ids
- supplier response: id, rfp_id, supplier_contact_id, structured_answers,
  auto_score_json, auto_score_generated_at
"""

import copy
import json
import threading
from typing import Any, Dict, List, Optional

from rfp_utils.core.jsonval import _coerce_json
from rfp_utils.core.log import get_logger
from rfp_utils.db import connection


class ScoreStore:
    """Persistence contract used by the scoring engine. Methods are blocking."""

    def get_rfp(self, rfp_id: str, company_id: str) -> Optional[Dict[str, Any]]:
        raise NotImplementedError

    def get_supplier_response(
        self, rfp_id: str, supplier_id: str
    ) -> Optional[Dict[str, Any]]:
        raise NotImplementedError

    def save_scores(
        self, response_id: str, scores: List[Dict[str, Any]], generated_at: Optional[str]
    ) -> None:
        raise NotImplementedError


class MockScoreStore(ScoreStore):
    """In-memory store for development and tests. Reads and writes are deep copies."""

    def __init__(self):
        self._lock = threading.Lock()
        self._db: Dict[str, Dict[str, Any]] = {"rfps": {}, "supplier_responses": {}}

    def add_rfp(
        self,
        rfp_id: str,
        company_id: str,
        requirements: Optional[List[Dict[str, Any]]],
        scoring_settings: Optional[Dict[str, Any]] = None,
    ) -> None:
        snapshot = {"requirements": requirements} if requirements is not None else None
        with self._lock:
            self._db["rfps"][rfp_id] = {
                "id": rfp_id,
                "company_id": company_id,
                "scoring_matrix_snapshot": copy.deepcopy(snapshot),
                "scoring_settings": copy.deepcopy(scoring_settings),
            }

    def add_supplier_response(
        self,
        rfp_id: str,
        supplier_id: str,
        structured_answers: Optional[List[Dict[str, Any]]] = None,
        auto_score_json: Optional[List[Dict[str, Any]]] = None,
        response_id: Optional[str] = None,
    ) -> str:
        response_id = response_id or f"{rfp_id}:{supplier_id}"
        with self._lock:
            self._db["supplier_responses"][response_id] = {
                "id": response_id,
                "rfp_id": rfp_id,
                "supplier_contact_id": supplier_id,
                "structured_answers": copy.deepcopy(structured_answers),
                "auto_score_json": copy.deepcopy(auto_score_json),
                "auto_score_generated_at": None,
            }
        return response_id

    def set_structured_answers(
        self, response_id: str, structured_answers: Optional[List[Dict[str, Any]]]
    ) -> None:
        """Replace a supplier's submitted answers (resubmission)."""
        with self._lock:
            row = self._db["supplier_responses"].get(response_id)
            if row is None:
                raise KeyError(f"Supplier response {response_id} not found")
            row["structured_answers"] = copy.deepcopy(structured_answers)

    def get_rfp(self, rfp_id: str, company_id: str) -> Optional[Dict[str, Any]]:
        with self._lock:
            rfp = self._db["rfps"].get(rfp_id)
            if not rfp or rfp["company_id"] != company_id:
                return None
            record = copy.deepcopy(rfp)
            record["supplier_ids"] = [
                r["supplier_contact_id"]
                for r in self._db["supplier_responses"].values()
                if r["rfp_id"] == rfp_id
            ]
            return record

    def get_supplier_response(
        self, rfp_id: str, supplier_id: str
    ) -> Optional[Dict[str, Any]]:
        with self._lock:
            for r in self._db["supplier_responses"].values():
                if r["rfp_id"] == rfp_id and r["supplier_contact_id"] == supplier_id:
                    return copy.deepcopy(r)
        return None

    def save_scores(
        self, response_id: str, scores: List[Dict[str, Any]], generated_at: Optional[str]
    ) -> None:
        with self._lock:
            row = self._db["supplier_responses"].get(response_id)
            if row is None:
                raise KeyError(f"Supplier response {response_id} not found")
            row["auto_score_json"] = copy.deepcopy(scores)
            if generated_at is not None:
                row["auto_score_generated_at"] = generated_at


class PostgresScoreStore(ScoreStore):
    """psycopg2-backed store; one short-lived connection per call."""

    def __init__(self, database_url: Optional[str] = None):
        self.database_url = database_url or connection.DATABASE_URL

    def get_rfp(self, rfp_id: str, company_id: str) -> Optional[Dict[str, Any]]:
        conn = connection.get_db_connection(self.database_url)
        try:
            with conn.cursor() as cur:
                cur.execute(
                    """
                    SELECT id, company_id, scoring_matrix_snapshot, scoring_settings_json
                    FROM rfps WHERE id = %s AND company_id = %s
                """,
                    (rfp_id, company_id),
                )
                row = cur.fetchone()
                if not row:
                    return None
                cur.execute(
                    """
                    SELECT supplier_contact_id FROM supplier_responses
                    WHERE rfp_id = %s ORDER BY supplier_contact_id
                """,
                    (rfp_id,),
                )
                supplier_ids = [r["supplier_contact_id"] for r in cur.fetchall()]
            return {
                "id": row["id"],
                "company_id": row["company_id"],
                "scoring_matrix_snapshot": _coerce_json(row["scoring_matrix_snapshot"]),
                "scoring_settings": _coerce_json(row["scoring_settings_json"]),
                "supplier_ids": supplier_ids,
            }
        except Exception as e:
            get_logger().error(f"Failed to get RFP {rfp_id}: {e}")
            raise
        finally:
            conn.close()

    def get_supplier_response(
        self, rfp_id: str, supplier_id: str
    ) -> Optional[Dict[str, Any]]:
        conn = connection.get_db_connection(self.database_url)
        try:
            with conn.cursor() as cur:
                cur.execute(
                    """
                    SELECT * FROM supplier_responses
                    WHERE rfp_id = %s AND supplier_contact_id = %s
                """,
                    (rfp_id, supplier_id),
                )
                row = cur.fetchone()
            if not row:
                return None
            record = dict(row)
            record["structured_answers"] = _coerce_json(record.get("structured_answers"))
            record["auto_score_json"] = _coerce_json(record.get("auto_score_json"))
            generated_at = record.get("auto_score_generated_at")
            if generated_at is not None and not isinstance(generated_at, str):
                record["auto_score_generated_at"] = generated_at.isoformat()
            return record
        except Exception as e:
            get_logger().error(
                f"Failed to get response for supplier {supplier_id} on RFP {rfp_id}: {e}"
            )
            raise
        finally:
            conn.close()

    def save_scores(
        self, response_id: str, scores: List[Dict[str, Any]], generated_at: Optional[str]
    ) -> None:
        conn = connection.get_db_connection(self.database_url)
        try:
            with conn.cursor() as cur:
                if generated_at is not None:
                    cur.execute(
                        """
                        UPDATE supplier_responses
                        SET auto_score_json = %s, auto_score_generated_at = %s
                        WHERE id = %s
                    """,
                        (json.dumps(scores), generated_at, response_id),
                    )
                else:
                    cur.execute(
                        """
                        UPDATE supplier_responses SET auto_score_json = %s
                        WHERE id = %s
                    """,
                        (json.dumps(scores), response_id),
                    )
                if cur.rowcount == 0:
                    raise KeyError(f"Supplier response {response_id} not found")
            conn.commit()
        except Exception as e:
            conn.rollback()
            get_logger().error(f"Failed to save scores for response {response_id}: {e}")
            raise
        finally:
            conn.close()


def get_score_store() -> ScoreStore:
    """Pick the store from the configured db_type (mock by default)."""
    if connection.DB_TYPE == "postgres":
        return PostgresScoreStore()
    return MockScoreStore()
