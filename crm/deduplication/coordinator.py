"""
Preview/execute entry point for the contact duplicate scrubber.

preview() is read-only and lock-free. execute() always rescans the store
(a client-held preview may be stale), holds the engine lock for the whole
run and merges every group in its own transaction. A failing group is
recorded and skipped; it never stops the batch.
"""

from concurrent.futures import ThreadPoolExecutor, as_completed

from loguru import logger
from sqlalchemy.orm import sessionmaker

from crm.config import DedupeSettings, settings as app_settings
from crm.database import SessionLocal
from crm.deduplication.errors import TransactionError, ValidationError
from crm.deduplication.executor import MergeExecutor
from crm.deduplication.grouping import build_groups
from crm.deduplication.locks import EngineLock
from crm.deduplication.models import DuplicateGroup, GroupOutcome, MergeResult, ScrubPreview
from crm.deduplication.reassign import get_or_create_tag
from crm.deduplication.scanner import scan_contacts


class DuplicateScrubber:
    """Finds and merges duplicate contacts."""

    def __init__(self, session_factory: sessionmaker | None = None, settings: DedupeSettings | None = None):
        self.session_factory = session_factory or SessionLocal
        self.settings = settings or app_settings.dedupe
        self.executor = MergeExecutor(self.session_factory, self.settings)

    def find_groups(self) -> list[DuplicateGroup]:
        """Scan the store and build duplicate groups (no writes)."""
        with self.session_factory() as session:
            scan = scan_contacts(session, batch_size=self.settings.batch_size)
        return build_groups(scan)

    def preview(self, limit: int | None = None) -> ScrubPreview:
        """
        Report what a merge would do without touching storage.

        Totals always cover every group; ``limit`` only truncates the
        returned group list (0 = no limit, None = configured default).
        """
        if limit is None:
            limit = self.settings.preview_limit
        if not isinstance(limit, int) or isinstance(limit, bool) or limit < 0:
            raise ValidationError("limit must be a non-negative integer")

        groups = self.find_groups()
        preview = ScrubPreview(
            total_duplicate_groups=len(groups),
            total_contacts_to_merge=sum(g.contacts_to_merge for g in groups),
            total_properties_to_consolidate=sum(len(g.unique_properties) for g in groups),
            groups=groups[:limit] if limit > 0 else groups,
        )
        logger.info(
            f"Preview: {preview.total_duplicate_groups} groups, "
            f"{preview.total_contacts_to_merge} contacts to merge"
        )
        return preview

    def execute(self, execute: bool, group_keys: list[str] | None = None) -> MergeResult:
        """
        Merge every duplicate group found by a fresh scan.

        Args:
            execute: Must be exactly True; guards against accidental calls.
            group_keys: Optional match keys restricting which groups merge.

        Raises:
            ValidationError: bad arguments (nothing scanned).
            LockContentionError: another execute is running (nothing done).
        """
        if execute is not True:
            raise ValidationError("Refusing to merge without execute=true")
        if group_keys is not None:
            if not isinstance(group_keys, (list, tuple, set)) or not all(isinstance(k, str) for k in group_keys):
                raise ValidationError("group_keys must be a list of match keys")
            group_keys = set(group_keys)

        with EngineLock(self.settings.lock_name, self._engine()):
            logger.info(f"Acquired lock '{self.settings.lock_name}', rescanning contacts")
            groups = self.find_groups()
            if group_keys:
                groups = [g for g in groups if g.match_key in group_keys]

            result = self._merge_groups(groups)

        logger.info(
            f"Merge complete: {result.merged_groups} groups merged, {result.contacts_deleted} contacts deleted, "
            f"{result.properties_consolidated} properties consolidated, {len(result.failures)} failures"
        )
        return result

    def _engine(self):
        with self.session_factory() as session:
            return session.get_bind()

    def _attempt(self, group: DuplicateGroup) -> tuple[GroupOutcome | None, str | None]:
        """Merge one group; returns (outcome, None) or (None, failure reason)."""
        try:
            return self.executor.merge(group), None
        except TransactionError as e:
            logger.warning(f"Group {group.match_key} rolled back: {e.reason}")
            return None, e.reason
        except Exception as e:
            logger.exception(f"Group {group.match_key} failed unexpectedly")
            return None, f"Unexpected error: {type(e).__name__}"

    def _merge_groups(self, groups: list[DuplicateGroup]) -> MergeResult:
        result = MergeResult()
        workers = min(self.settings.max_workers, len(groups))

        if workers <= 1:
            for group in groups:
                self._record(result, group, *self._attempt(group))
            return result

        # Groups never share a contact; the one row they do share, the
        # multiple-property tag, is created here so workers only read it
        self._create_shared_tag()
        with ThreadPoolExecutor(max_workers=workers) as pool:
            futures = {pool.submit(self._attempt, group): group for group in groups}
            for future in as_completed(futures):
                outcome, reason = future.result()
                self._record(result, futures[future], outcome, reason)
        return result

    def _create_shared_tag(self) -> None:
        if not self.settings.multiple_property_tag:
            return
        with self.session_factory() as session, session.begin():
            get_or_create_tag(session, self.settings.multiple_property_tag)

    @staticmethod
    def _record(result: MergeResult, group: DuplicateGroup, outcome: GroupOutcome | None, reason: str | None) -> None:
        if outcome is not None:
            result.record_success(outcome)
        else:
            result.record_failure(group.match_key, reason or "Unknown error")
