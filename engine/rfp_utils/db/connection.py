"""
Database connection management for the scoring engine.

Supports PostgreSQL (via psycopg2) and an in-memory mock store.
Config from Vault (or process env).
"""

import psycopg2
from psycopg2.extras import RealDictCursor
from urllib.parse import urlparse, unquote
from typing import Any, Dict

from rfp_utils.vault import secrets
from rfp_utils.core.log import pid_tool_logger, set_logger, get_logger

DB_TYPE = secrets.db_type()
DATABASE_URL = secrets.postgres_url()


def _parse_postgres_url(url: str) -> Dict[str, Any]:
    """
    Parse postgresql:// or postgres:// URL into connection kwargs.
    Component-based parsing keeps passwords with %, &, @ usable without
    percent-encoding them in Vault.
    """
    parsed = urlparse(url)
    netloc = parsed.netloc or ""
    path = (parsed.path or "").strip("/") or "postgres"

    # userinfo is "user:password" before the last @ in netloc
    at = netloc.rfind("@")
    if at >= 0:
        userinfo = netloc[:at]
        hostport = netloc[at + 1 :]
    else:
        userinfo = ""
        hostport = netloc

    user = ""
    password = ""
    if userinfo:
        colon = userinfo.find(":")
        if colon >= 0:
            user = unquote(userinfo[:colon])
            password = unquote(userinfo[colon + 1 :])
        else:
            user = unquote(userinfo)

    host = "localhost"
    port = 5432
    if hostport:
        if ":" in hostport:
            host, port_str = hostport.rsplit(":", 1)
            try:
                port = int(port_str)
            except ValueError:
                port = 5432
        else:
            host = hostport

    return {
        "host": host or "localhost",
        "port": port,
        "user": user,
        "password": password,
        "dbname": path,
    }


def get_db_connection(database_url: str | None = None):
    """Open a psycopg2 connection with dict rows."""
    url = database_url or DATABASE_URL
    if not url:
        raise ValueError("postgres_url is required when db_type=postgres")

    log = get_logger()
    kwargs = _parse_postgres_url(url)
    try:
        conn = psycopg2.connect(cursor_factory=RealDictCursor, **kwargs)
    except psycopg2.Error as e:
        log.error(f"Failed to connect to PostgreSQL: {e}")
        raise
    log.debug("Connected to PostgreSQL database")
    return conn


def init_db(database_url: str | None = None):
    """
    Create the scoring tables if they don't exist.
    The engine only reads rfps and only writes the auto-score columns of
    supplier_responses; the surrounding application owns the rest.
    """
    set_logger(pid_tool_logger("SYSTEM", "db_init"))
    log = get_logger()

    conn = get_db_connection(database_url)
    try:
        with conn.cursor() as cur:
            cur.execute("""
                CREATE TABLE IF NOT EXISTS rfps (
                    id VARCHAR(255) PRIMARY KEY,
                    company_id VARCHAR(255) NOT NULL,
                    scoring_matrix_snapshot JSONB,
                    scoring_settings_json JSONB,
                    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                );
            """)

            cur.execute("""
                CREATE TABLE IF NOT EXISTS supplier_responses (
                    id VARCHAR(255) PRIMARY KEY,
                    rfp_id VARCHAR(255) NOT NULL REFERENCES rfps(id) ON DELETE CASCADE,
                    supplier_contact_id VARCHAR(255) NOT NULL,
                    structured_answers JSONB,
                    auto_score_json JSONB,
                    auto_score_generated_at TIMESTAMP,
                    UNIQUE(rfp_id, supplier_contact_id)
                );
            """)

            cur.execute("""
                CREATE INDEX IF NOT EXISTS idx_rfps_company
                ON rfps(company_id);
            """)

            cur.execute("""
                CREATE INDEX IF NOT EXISTS idx_supplier_responses_rfp
                ON supplier_responses(rfp_id);
            """)

            conn.commit()
            log.info("Database tables initialized successfully")
    except Exception as e:
        conn.rollback()
        log.error(f"Failed to initialize database: {e}")
        raise
    finally:
        conn.close()
