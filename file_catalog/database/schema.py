"""
Database schema definitions.
"""
import sqlite3
import logging

CURRENT_SCHEMA_VERSION = 1


def init_schema(conn: sqlite3.Connection):
    """
    Applies the core schema to the database.
    Idempotent: safe to run on every startup.
    """
    with conn:
        # 1. Version Tracking (For future migrations)
        conn.execute("""
            CREATE TABLE IF NOT EXISTS schema_version (
                version INTEGER PRIMARY KEY
            );
        """)

        cur = conn.cursor()
        cur.execute("SELECT version FROM schema_version")
        if not cur.fetchone():
            conn.execute("INSERT INTO schema_version (version) VALUES (?)", (CURRENT_SCHEMA_VERSION,))

        # 2. Core File Table
        # One row per absolute path; relative_path is unique within a scan root
        conn.execute("""
        CREATE TABLE IF NOT EXISTS files (
            id                  INTEGER PRIMARY KEY AUTOINCREMENT,
            path                TEXT NOT NULL UNIQUE,
            scan_root           TEXT NOT NULL,
            relative_path       TEXT NOT NULL,
            name                TEXT NOT NULL,
            extension           TEXT NOT NULL,
            size_bytes          INTEGER NOT NULL CHECK (size_bytes >= 0),
            created_at          TEXT NOT NULL,
            modified_at         TEXT NOT NULL,
            accessed_at         TEXT NOT NULL,
            mime_type           TEXT NOT NULL,
            mime_from_extension TEXT NOT NULL,
            mime_from_magic     TEXT NOT NULL,
            mime_confident      INTEGER NOT NULL DEFAULT 0,
            category            TEXT NOT NULL,
            UNIQUE (scan_root, relative_path)
        );
        """)

        # 3. Content Digests (algorithm -> hex), replaced wholesale on upsert
        conn.execute("""
        CREATE TABLE IF NOT EXISTS content_hashes (
            file_id     INTEGER NOT NULL,
            algorithm   TEXT NOT NULL,
            digest      TEXT NOT NULL,
            PRIMARY KEY (file_id, algorithm),
            FOREIGN KEY(file_id) REFERENCES files(id) ON DELETE CASCADE
        );
        """)

        # 4. Processor Output (opaque JSON payload tagged by category)
        conn.execute("""
        CREATE TABLE IF NOT EXISTS category_metadata (
            file_id     INTEGER PRIMARY KEY,
            category    TEXT NOT NULL,
            payload     TEXT NOT NULL,
            FOREIGN KEY(file_id) REFERENCES files(id) ON DELETE CASCADE
        );
        """)

        # 5. Indices for Performance
        conn.execute("CREATE INDEX IF NOT EXISTS idx_files_category ON files(category);")
        conn.execute("CREATE INDEX IF NOT EXISTS idx_files_extension ON files(extension);")
        conn.execute("CREATE INDEX IF NOT EXISTS idx_files_size ON files(size_bytes);")
        conn.execute("CREATE INDEX IF NOT EXISTS idx_files_modified ON files(modified_at);")
        conn.execute("CREATE INDEX IF NOT EXISTS idx_content_hashes_digest ON content_hashes(algorithm, digest);")

    logging.debug("Database schema initialized.")
