"""Process-wide collaborators, chosen once from configuration.

Same conditional pattern as the database engine: PostgreSQL-backed
repositories when DATABASE_URL is set, in-memory ones otherwise.
"""

from __future__ import annotations

from tappass.core.config import SETTINGS
from tappass.db.engine import async_session_factory
from tappass.repos.access_log_repo import AccessLogRepo, InMemoryAccessLogRepo
from tappass.repos.credential_repo import CredentialRepo, InMemoryCredentialRepo
from tappass.repos.pg_access_log_repo import PgAccessLogRepo
from tappass.repos.pg_credential_repo import PgCredentialRepo
from tappass.services.audit_logger import AuditLogger
from tappass.services.policy import PolicyEvaluator

if async_session_factory is not None:
    credential_repo: CredentialRepo = PgCredentialRepo(async_session_factory)
    access_log_repo: AccessLogRepo = PgAccessLogRepo(async_session_factory)
else:
    credential_repo = InMemoryCredentialRepo()
    access_log_repo = InMemoryAccessLogRepo()

audit_logger = AuditLogger(
    access_log_repo,
    max_retries=SETTINGS.audit_max_retries,
    timeout_seconds=SETTINGS.audit_timeout_seconds,
)

policy_evaluator = PolicyEvaluator(tz=SETTINGS.tz)
