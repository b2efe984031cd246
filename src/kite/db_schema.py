"""Database schema definitions for the kite issue store.

Four relations: ``issue_scopes``, ``issues``, ``links`` and ``related_issues``.
Cascades are deliberately absent; ``KiteDB.delete_issue`` removes dependents
explicitly, in order, inside one transaction.
"""

from __future__ import annotations

SCHEMA_SQL = """\
CREATE TABLE IF NOT EXISTS issue_scopes (
    id                  TEXT PRIMARY KEY,
    resource_type       TEXT NOT NULL,
    resource_name       TEXT NOT NULL,
    resource_namespace  TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_scopes_resource ON issue_scopes(resource_type, resource_name);

CREATE TABLE IF NOT EXISTS issues (
    id           TEXT PRIMARY KEY,
    title        TEXT NOT NULL,
    description  TEXT NOT NULL DEFAULT '',
    severity     TEXT NOT NULL,
    issue_type   TEXT NOT NULL,
    state        TEXT NOT NULL DEFAULT 'ACTIVE',
    instance     TEXT NOT NULL DEFAULT '',
    detected_at  TEXT NOT NULL,
    resolved_at  TEXT,
    namespace    TEXT NOT NULL,
    scope_id     TEXT NOT NULL UNIQUE REFERENCES issue_scopes(id),
    -- JSON array of (namespace, issue_type, resource_type, resource_name, resource_namespace)
    dedup_key    TEXT NOT NULL,
    created_at   TEXT NOT NULL,
    updated_at   TEXT NOT NULL,

    CHECK (severity IN ('info', 'minor', 'major', 'critical')),
    CHECK (state IN ('ACTIVE', 'RESOLVED'))
);

CREATE UNIQUE INDEX IF NOT EXISTS idx_issues_dedup ON issues(dedup_key);
CREATE INDEX IF NOT EXISTS idx_issues_namespace_state ON issues(namespace, state);
CREATE INDEX IF NOT EXISTS idx_issues_detected ON issues(detected_at DESC);
CREATE INDEX IF NOT EXISTS idx_issues_severity ON issues(severity);
CREATE INDEX IF NOT EXISTS idx_issues_type ON issues(issue_type);

CREATE TABLE IF NOT EXISTS links (
    id        TEXT PRIMARY KEY,
    title     TEXT NOT NULL,
    url       TEXT NOT NULL,
    issue_id  TEXT NOT NULL REFERENCES issues(id)
);

CREATE INDEX IF NOT EXISTS idx_links_issue ON links(issue_id);

CREATE TABLE IF NOT EXISTS related_issues (
    id          TEXT PRIMARY KEY,
    source_id   TEXT NOT NULL REFERENCES issues(id),
    target_id   TEXT NOT NULL REFERENCES issues(id),
    created_at  TEXT NOT NULL,

    CHECK (source_id <> target_id)
);

CREATE INDEX IF NOT EXISTS idx_related_source ON related_issues(source_id);
CREATE INDEX IF NOT EXISTS idx_related_target ON related_issues(target_id);
-- Undirected uniqueness: (a, b) and (b, a) collide.
CREATE UNIQUE INDEX IF NOT EXISTS idx_related_pair
  ON related_issues(min(source_id, target_id), max(source_id, target_id));
"""

CURRENT_SCHEMA_VERSION = 1
