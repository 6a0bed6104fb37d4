"""
Candidate sync service - keeps Candidate Database and Active Candidates consistent.

Reconciliation rules:
- An Active Candidates row exists iff a Candidate Database row with the same
  (jobId, normalized email) exists and the requisition is Open or On Hold.
- Candidate Database rows mirror the requisition's title and canonical status.
- Writes are diff-based, so a second pass over unchanged data writes nothing.
- Active rows edited within the mute window are left alone.
"""
import logging
from datetime import datetime
from typing import Any, Callable, Dict, Iterable, List, Optional, Set

from ats_sync.config import PHONE_MAX_DIGITS, PHONE_MIN_DIGITS, SHEET_ACTIVE
from ats_sync.models import (
    CandCol,
    CandidateStage,
    LINK_FIELDS,
    LINK_LABELS,
    MIRRORED_FIELDS,
    OPEN_STATUSES,
    Hyperlink,
    ReconcileResult,
    Severity,
    TableKind,
)
from ats_sync.repositories import RowIO
from ats_sync.utils import (
    MuteWindow,
    canonicalize_status,
    cell_text,
    composite_key,
    diff_fields,
    extract_url,
    is_blank,
    job_id_from_key,
    make_hyperlink,
    normalize_email,
    normalize_phone,
    now_local,
)
from .header_service import HeaderResolver
from .hired_flow import HiredFlow
from .index_service import IndexedRow, RowIndex, build_candidate_index, build_requisition_index
from .link_hygiene_service import LinkHygieneService
from .notification_service import NotificationService
from .row_template import apply_template_format, capture_template_format
from .validation_service import ValidationService

logger = logging.getLogger(__name__)

DUPLICATE_EMAIL_MESSAGE = "Duplicate Email Address(es) blocked; please enter unique emails."


def email_cell(raw: Any) -> Any:
    """mailto: link labelled with the email as typed."""
    text = cell_text(raw)
    email = normalize_email(raw)
    if not email:
        return raw
    return make_hyperlink(f"mailto:{email}", text) or text


def phone_cell(raw: Any) -> Any:
    """tel: link labelled with the phone as typed, when it has a plausible digit count."""
    digits = normalize_phone(raw)
    if PHONE_MIN_DIGITS <= len(digits) <= PHONE_MAX_DIGITS:
        return make_hyperlink(f"tel:{digits}", cell_text(raw)) or raw
    return raw


def _with_contact_links(values: Dict[str, Any]) -> Dict[str, Any]:
    out = dict(values)
    if CandCol.EMAIL in out and not isinstance(out[CandCol.EMAIL], Hyperlink):
        out[CandCol.EMAIL] = email_cell(out[CandCol.EMAIL])
    if CandCol.PHONE in out and not isinstance(out[CandCol.PHONE], Hyperlink):
        out[CandCol.PHONE] = phone_cell(out[CandCol.PHONE])
    return out


class CandidateSyncService:
    """Reconciliation and the Candidate Database edit helpers."""

    def __init__(
        self,
        headers: HeaderResolver,
        validations: ValidationService,
        hired_flow: HiredFlow,
        link_hygiene: LinkHygieneService,
        mute: MuteWindow,
        notifier: NotificationService,
        clock: Callable[[], datetime] = now_local,
    ):
        self.headers = headers
        self.validations = validations
        self.hired_flow = hired_flow
        self.link_hygiene = link_hygiene
        self.mute = mute
        self.notifier = notifier
        self.clock = clock

    # =========================================================================
    # Reconciliation
    # =========================================================================

    async def reconcile(self, job_ids: Optional[Iterable[str]] = None) -> ReconcileResult:
        """
        Reconcile Active Candidates membership.

        Args:
            job_ids: Restrict the pass to these jobs; None or empty means all

        Returns:
            ReconcileResult with per-step counts
        """
        scope = sorted({j for j in (job_ids or []) if j}) or None
        result = ReconcileResult(job_ids=scope)
        in_scope = (lambda jid: jid in scope) if scope else (lambda jid: True)

        all_io = await self.headers.open(TableKind.CANDIDATE)
        act_io = await self.headers.open(TableKind.ACTIVE)
        req_io = await self.headers.open(TableKind.REQUISITION)
        if all_io is None or act_io is None or req_io is None:
            logger.warning("Reconcile skipped: table not ready")
            return result

        all_index = await build_candidate_index(all_io)
        act_index = await build_candidate_index(act_io)
        req_index = await build_requisition_index(req_io)

        # --- Deletion pass ---
        to_delete: Set[int] = set()
        for entry in act_index.rows:
            jid = job_id_from_key(entry.key)
            if not in_scope(jid):
                continue
            if act_index.by_key[entry.key] != entry.row:
                # Same key further down survives
                to_delete.add(entry.row)
                continue
            allowed = False
            if all_index.has(entry.key):
                req = req_index.get(jid)
                allowed = req is not None and canonicalize_status(req.record.job_status) in OPEN_STATUSES
            if not allowed:
                to_delete.add(entry.row)

        for row in sorted(to_delete, reverse=True):
            try:
                await act_io.delete_row(row)
                result.deleted += 1
            except Exception as e:
                result.failed_rows += 1
                logger.warning(f"Range op failed: delete | sheet={act_io.sheet} row={row} error={e}")

        if to_delete:
            act_index = await build_candidate_index(act_io)

        # --- Selection and upsert pass ---
        candidates = [e for e in all_index.rows if in_scope(e.record.job_id)]
        result.candidates = len(candidates)
        processed: Set[str] = set()
        now = self.clock()

        for entry in candidates:
            jid = entry.record.job_id
            email = normalize_email(entry.record.email)
            if not jid or not email:
                continue

            key = composite_key(jid, email)
            if key in processed:
                logger.warning(f"Duplicate candidate key encountered during reconcile; skipping duplicate | key={key} row={entry.row}")
                result.conflicts += 1
                continue
            processed.add(key)

            req = req_index.get(jid)
            if req is None:
                continue

            try:
                status = canonicalize_status(req.record.job_status)
                if await self._mirror_requisition(all_io, entry, req, now):
                    result.all_updated += 1

                if status not in OPEN_STATUSES:
                    continue
                if await self.mute.is_muted(SHEET_ACTIVE, key):
                    result.muted += 1
                    logger.info(f"Skipping recently edited Active row | key={key}")
                    continue

                outcome = await self._upsert_active(all_io, act_io, act_index, entry, key)
                if outcome == "inserted":
                    result.active_inserted += 1
                elif outcome == "updated":
                    result.active_updated += 1
                elif outcome == "partial":
                    result.active_updated += 1
                    result.failed_rows += 1
            except Exception as e:
                result.failed_rows += 1
                logger.warning(f"Reconcile failed for candidate | sheet={all_io.sheet} row={entry.row} key={key} error={e}")

        result.synced = len(processed)
        logger.info(
            f"Reconcile complete | job_ids={scope or 'all'} candidates={result.candidates} "
            f"synced={result.synced} deleted={result.deleted} inserted={result.active_inserted} "
            f"updated={result.active_updated} muted={result.muted} failed={result.failed_rows}"
        )
        return result

    async def reconcile_all(self) -> ReconcileResult:
        return await self.reconcile(None)

    async def _mirror_requisition(self, all_io: RowIO, entry: IndexedRow, req: IndexedRow, now: datetime) -> bool:
        """Copy the requisition's title and canonical status into a Candidate Database row."""
        want = {
            CandCol.JOB_TITLE: req.record.job_title,
            CandCol.JOB_STATUS: canonicalize_status(req.record.job_status),
        }
        fields = [f for f in want if all_io.info.has(f)]
        diff = diff_fields(want, entry.values, fields)
        if not diff:
            return False
        if all_io.info.has(CandCol.UPDATED):
            diff[CandCol.UPDATED] = now
        await all_io.write_fields(entry.row, diff)
        entry.values.update(diff)
        return True

    def _desired_active_values(self, all_io: RowIO, act_io: RowIO, values: Dict[str, Any]) -> Dict[str, Any]:
        return {
            f: values.get(f)
            for f in MIRRORED_FIELDS
            if f not in LINK_FIELDS and act_io.info.has(f) and all_io.info.has(f)
        }

    async def _upsert_active(
        self,
        all_io: RowIO,
        act_io: RowIO,
        act_index: RowIndex,
        entry: IndexedRow,
        key: str,
    ) -> Optional[str]:
        """
        Insert or diff-update the Active Candidates row for one candidate.

        Returns:
            "inserted", "updated", "partial" (some cells failed) or None
        """
        desired = self._desired_active_values(all_io, act_io, entry.values)
        existing = act_index.get(key)

        if existing is not None:
            diff = diff_fields(desired, existing.values, list(desired))
            diff = _with_contact_links(diff)

            dirty_links = []
            for field in LINK_FIELDS:
                if not (act_io.info.has(field) and all_io.info.has(field)):
                    continue
                all_url = extract_url(entry.values.get(field))
                if all_url and all_url != extract_url(existing.values.get(field)):
                    diff[field] = all_url
                    dirty_links.append(field)

            if not diff:
                return None

            written = await act_io.write_fields(existing.row, diff)
            existing.values.update(diff)
            for field in dirty_links:
                await self.link_hygiene.mark_dirty(act_io.sheet, field, existing.row)
            if dirty_links:
                await self.link_hygiene.schedule()
            return "updated" if written == len(diff) else "partial"

        template = await capture_template_format(act_io)
        row = await act_io.append_row()
        await apply_template_format(act_io, template, row)

        values = _with_contact_links(desired)
        for field in LINK_FIELDS:
            if not act_io.info.has(field):
                continue
            url = extract_url(entry.values.get(field))
            link = make_hyperlink(url, LINK_LABELS[field]) if url else None
            if link is not None:
                values[field] = link

        written = await act_io.write_fields(row, values)
        try:
            await self.validations.apply_new_row_validations(act_io, row)
        except Exception as e:
            logger.warning(f"Failed to apply validations to new Active row | row={row} error={e}")

        act_index.rows.append(IndexedRow(row=row, values=values, record=act_io.info.to_record(row, values), key=key))
        act_index.by_row[row] = act_index.rows[-1]
        act_index.by_key[key] = row
        logger.info(f"Inserted Active row | key={key} row={row}")
        return "inserted" if written == len(values) else "partial"

    # =========================================================================
    # Requisition mirror for Candidate Database rows
    # =========================================================================

    async def autopopulate_from_job_id(self, rows: Iterable[int]) -> int:
        """Mirror title/status from Requisitions into the given Candidate Database rows."""
        all_io = await self.headers.open(TableKind.CANDIDATE)
        req_io = await self.headers.open(TableKind.REQUISITION)
        if all_io is None or req_io is None:
            return 0

        req_index = await build_requisition_index(req_io)
        now = self.clock()
        updated = 0
        for row in sorted(set(rows)):
            if row < all_io.info.data_start_row:
                continue
            values = await all_io.read_row(row)
            record = all_io.info.to_record(row, values)
            jid = record.job_id if record is not None else ""
            if not jid:
                continue
            req = req_index.get(jid)
            if req is None:
                logger.info(f"Autopopulate skipped: Job ID not found in Requisitions | row={row} job_id={jid}")
                continue
            entry = IndexedRow(row=row, values=values, record=record)
            if await self._mirror_requisition(all_io, entry, req, now):
                updated += 1
        return updated

    async def sweep_autopopulate_all_from_requisitions(self) -> int:
        """Mirror title/status into every Candidate Database row with a known job."""
        all_io = await self.headers.open(TableKind.CANDIDATE)
        req_io = await self.headers.open(TableKind.REQUISITION)
        if all_io is None or req_io is None:
            return 0

        all_index = await build_candidate_index(all_io)
        req_index = await build_requisition_index(req_io)
        now = self.clock()
        updated = 0
        for entry in all_index.rows:
            jid = entry.record.job_id
            req = req_index.get(jid) if jid else None
            if req is None:
                continue
            if await self._mirror_requisition(all_io, entry, req, now):
                updated += 1
        logger.info(f"Autopopulate sweep complete | updated_rows={updated}")
        return updated

    # =========================================================================
    # Candidate Database edit helpers
    # =========================================================================

    async def enforce_unique_email(self, rows: Iterable[int]) -> List[int]:
        """
        Blank the email of edited rows that repeat an earlier row's email.

        The first occurrence in sheet order wins; only rows in `rows` are cleared.
        """
        all_io = await self.headers.open(TableKind.CANDIDATE)
        if all_io is None or not all_io.info.has(CandCol.EMAIL):
            return []

        edited = set(rows)
        seen: Dict[str, int] = {}
        to_clear: List[int] = []
        for row, values in await all_io.bulk_read():
            email = normalize_email(values.get(CandCol.EMAIL))
            if not email:
                continue
            if email not in seen:
                seen[email] = row
            elif row in edited:
                to_clear.append(row)
                logger.warning(f"Duplicate email blocked | row={row} email={email} first_row={seen[email]}")

        if to_clear:
            await all_io.write_column(all_io.info.column(CandCol.EMAIL), to_clear, "")
            await self.notifier.notify(DUPLICATE_EMAIL_MESSAGE, Severity.WARNING)
        return to_clear

    async def stamp_created_and_updated(self, rows: Iterable[int], headers: Optional[Iterable[str]] = None) -> int:
        """
        Stamp Created / Last Updated / Hired Date on edited Candidate Database rows.

        Only the row's own stage makes it Hired; the mirrored Job Status of a
        hired requisition does not. A Hired row runs the hired flow when its
        stage was part of the edit or it has no Hired Date yet.

        Args:
            rows: Edited row numbers
            headers: Edited column headers, when known
        """
        all_io = await self.headers.open(TableKind.CANDIDATE)
        if all_io is None:
            return 0

        stage_edited = headers is not None and CandCol.STAGE in headers
        now = self.clock()
        stamped = 0
        for row in sorted(set(rows)):
            if row < all_io.info.data_start_row:
                continue
            values = await all_io.read_row(row)
            record = all_io.info.to_record(row, values)
            if record is None:
                continue
            meaningful = any(not is_blank(cell_text(v)) for v in values.values())
            updates: Dict[str, Any] = {}
            if meaningful and all_io.info.has(CandCol.CREATED) and record.created is None:
                updates[CandCol.CREATED] = now
            if meaningful and all_io.info.has(CandCol.UPDATED):
                updates[CandCol.UPDATED] = now

            is_hired = record.stage.lower() == CandidateStage.HIRED.value.lower()
            hired_date_set = record.hired_date is not None
            if all_io.info.has(CandCol.HIRED_DATE):
                if is_hired and not hired_date_set:
                    updates[CandCol.HIRED_DATE] = now
                elif not is_hired and hired_date_set:
                    updates[CandCol.HIRED_DATE] = ""

            if updates:
                await all_io.write_fields(row, updates)
                stamped += 1

            if is_hired and (stage_edited or not hired_date_set):
                email = normalize_email(record.email)
                if record.job_id and record.full_name and email:
                    await self.hired_flow.apply(record.job_id, record.full_name, email)
        return stamped

    async def upsert_all_from_active(self, act_values: Dict[str, Any]) -> bool:
        """
        Push an edited Active Candidates row back into Candidate Database.

        Returns:
            True when the Candidate Database row was changed
        """
        all_io = await self.headers.open(TableKind.CANDIDATE)
        act_io = await self.headers.open(TableKind.ACTIVE)
        if all_io is None or act_io is None:
            return False

        record = act_io.info.to_record(0, act_values)
        if record is None:
            return False
        jid = record.job_id
        email = normalize_email(record.email)
        if not jid or not email:
            return False

        all_index = await build_candidate_index(all_io)
        target = all_index.get(composite_key(jid, email))
        if target is None:
            logger.info(f"Active edit has no Candidate Database row | job_id={jid} email={email}")
            return False

        desired = self._desired_active_values(all_io, act_io, act_values)
        diff = diff_fields(desired, target.values, list(desired))
        changed = bool(diff)
        if diff:
            if all_io.info.has(CandCol.UPDATED):
                diff[CandCol.UPDATED] = self.clock()
            await all_io.write_fields(target.row, diff)
            await self.stamp_created_and_updated([target.row], list(diff))

        for field in LINK_FIELDS:
            if not (all_io.info.has(field) and act_io.info.has(field)):
                continue
            url = extract_url(act_values.get(field))
            if not url:
                continue
            current = target.values.get(field)
            label = LINK_LABELS[field]
            if isinstance(current, Hyperlink) and current.url == url and current.label == label:
                continue
            link = make_hyperlink(url, label)
            if link is not None:
                await all_io.write_fields(target.row, {field: link})
                changed = True
        return changed

    # =========================================================================
    # Row helpers shared with form and import processing
    # =========================================================================

    async def append_candidate_row(self, all_io: RowIO, values: Dict[str, Any]) -> int:
        """Append a Candidate Database row with template formatting and labelled links."""
        template = await capture_template_format(all_io)
        row = await all_io.append_row()
        await apply_template_format(all_io, template, row)

        cells = dict(values)
        for field in LINK_FIELDS:
            url = extract_url(cells.get(field))
            if url:
                link = make_hyperlink(url, LINK_LABELS[field])
                cells[field] = link if link is not None else cells[field]
        await all_io.write_fields(row, cells)
        return row
