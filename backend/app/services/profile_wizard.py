"""Profile-completion wizard controller.

Owns the draft of every section, the per-section completion map, the
current position, and submission. Section editors push `(data,
is_complete)` upward through `handle_section_update`; unless the push
comes from hydration (`skip_persist=True`) the controller writes that
section and, for required sections, its completion flag through the
gateway.

Persistence failures are logged and swallowed here: the in-memory draft
stays authoritative for the session and the next edit retries the write.
Upload failures are the exception and propagate to the caller.
"""

import asyncio
import logging
from datetime import datetime, timezone

from app.config import settings
from app.middleware.exceptions import PermissionDeniedError, UploadTimeoutError
from app.schemas.profile import UploadedDocument
from app.services.profile_editor import SectionEditor
from app.services.profile_gateway import ProfileGateway, ProfileRecord, UserIdentity
from app.services.profile_sections import (
    DOCUMENT_CATEGORIES,
    REQUIRED_SECTIONS,
    SECTIONS,
    SectionId,
    SectionValidation,
    calculate_progress,
    get_section,
    split_full_name,
)

logger = logging.getLogger(__name__)

SIGNATURE_VERSION = "1.0"


class WizardController:
    def __init__(
        self,
        gateway: ProfileGateway,
        identity: UserIdentity,
        autosave_delay: float | None = None,
    ):
        self.gateway = gateway
        self.identity = identity
        if autosave_delay is None:
            autosave_delay = settings.autosave_delay_ms / 1000

        self.sections = SECTIONS
        self.draft: dict[str, dict | None] = {s.id.value: None for s in SECTIONS}
        self.completion: dict[str, bool] = {s.id.value: not s.required for s in SECTIONS}
        self.current_index = 0
        self.is_complete = False
        self.editors: dict[str, SectionEditor] = {
            s.id.value: SectionEditor(s, self._push_handler(s.id.value), autosave_delay)
            for s in SECTIONS
        }

    def _push_handler(self, section_id: str):
        async def push(data: dict, is_complete: bool, skip_persist: bool) -> None:
            await self.handle_section_update(section_id, data, is_complete, skip_persist)
        return push

    # ── Derived state ───────────────────────────────────────

    @property
    def current_section(self) -> str:
        return self.sections[self.current_index].id.value

    @property
    def progress(self) -> int:
        return calculate_progress(self.completion)

    @property
    def required_complete(self) -> int:
        return sum(1 for s in REQUIRED_SECTIONS if self.completion.get(s.value))

    @property
    def can_submit(self) -> bool:
        return self.progress == 100

    @property
    def missing_sections(self) -> list[str]:
        return [s.value for s in REQUIRED_SECTIONS if not self.completion.get(s.value)]

    def editor(self, section_id: str | SectionId) -> SectionEditor:
        return self.editors[get_section(section_id).id.value]

    # ── Loading ─────────────────────────────────────────────

    async def load(self) -> None:
        """Read (or create) the stored profile, hydrate, then prefill from identity."""
        session_user = await self.gateway.get_current_user()
        if session_user is None or session_user.id != self.identity.id:
            raise PermissionDeniedError("Profile session does not match the signed-in user")

        record = await self.gateway.read_profile(self.identity.id)
        if record is None:
            await self._attempt("create_profile", self.gateway.create_profile(self.identity.id))
        else:
            await self.hydrate(record)
        await self.prefill_from_identity()

    async def hydrate(self, record: ProfileRecord) -> None:
        """Push stored sections into their editors. Writes nothing."""
        for section in self.sections:
            await self.editors[section.id.value].hydrate(record.sections.get(section.id.value))

        if record.current_section:
            try:
                self.current_index = self.sections.index(get_section(record.current_section))
            except ValueError:
                logger.warning(
                    "Ignoring unknown stored section %r for user %s",
                    record.current_section, self.identity.id,
                )
        self.is_complete = record.is_complete and self.can_submit

    async def prefill_from_identity(self) -> bool:
        metadata = self.identity.metadata or {}
        full_name = (
            metadata.get("full_name") or metadata.get("name") or self.identity.display_name
        )
        values = split_full_name(str(full_name))
        if self.identity.email:
            values["email"] = self.identity.email
        if not values:
            return False
        return await self.editors[SectionId.PERSONAL_IDENTIFIERS.value].prefill(values)

    # ── Section updates ─────────────────────────────────────

    async def handle_section_update(
        self,
        section_id: str,
        data: dict,
        is_complete: bool,
        skip_persist: bool = False,
    ) -> None:
        section = get_section(section_id)
        key = section.id.value
        self.draft[key] = data
        self.completion[key] = bool(is_complete) if section.required else True

        if skip_persist:
            return

        user_id = self.identity.id
        await self._attempt(
            f"write {key}", self.gateway.write_profile_section(user_id, key, data)
        )
        if section.required:
            await self._attempt(
                f"completion flag {key}",
                self.gateway.set_completion_flag(user_id, key, self.completion[key]),
            )

    async def edit_section(self, section_id: str, changes: dict) -> SectionValidation:
        return await self.editor(section_id).apply_changes(changes)

    async def _attempt(self, action: str, operation) -> bool:
        try:
            ok = await operation
        except Exception:
            logger.exception("Profile %s failed for user %s", action, self.identity.id)
            return False
        if ok is False:
            logger.warning("Profile %s was not saved for user %s", action, self.identity.id)
            return False
        return True

    # ── Navigation ──────────────────────────────────────────

    async def next(self) -> str:
        """Save the current section, then advance (no-op on the last section)."""
        key = self.current_section
        editor = self.editors[key]
        if editor.has_pending_push:
            await editor.flush()
        elif self.draft[key] is not None:
            await self.handle_section_update(key, self.draft[key], self.completion[key])

        if self.current_index < len(self.sections) - 1:
            self.current_index += 1
            await self._save_position()
        return self.current_section

    async def previous(self) -> str:
        if self.current_index > 0:
            self.current_index -= 1
            await self._save_position()
        return self.current_section

    async def jump(self, section_id: str | SectionId) -> str:
        self.current_index = self.sections.index(get_section(section_id))
        await self._save_position()
        return self.current_section

    async def _save_position(self) -> None:
        await self._attempt(
            "position save", self.gateway.save_position(self.identity.id, self.current_section)
        )

    async def flush(self) -> None:
        for editor in self.editors.values():
            await editor.flush()

    def discard(self) -> None:
        for editor in self.editors.values():
            editor.cancel()

    # ── Submission ──────────────────────────────────────────

    async def handle_submit_profile(self) -> bool:
        """Finalize the profile if every required section is complete.

        Below 100% this is a no-op that returns False; nothing is written.
        After finalizing, the stored record is re-read to confirm the flag.
        """
        await self.flush()
        if not self.can_submit:
            logger.info(
                "Submit ignored for user %s: %d%% complete, missing %s",
                self.identity.id, self.progress, ", ".join(self.missing_sections),
            )
            return False

        if not await self._attempt("finalize", self.gateway.finalize_profile(self.identity.id)):
            return False

        try:
            record = await self.gateway.read_profile(self.identity.id)
        except Exception:
            logger.exception("Could not confirm finalized profile for user %s", self.identity.id)
            return False
        self.is_complete = bool(record and record.is_complete)
        return self.is_complete

    # ── Attestation ─────────────────────────────────────────

    async def sign_attestation(
        self,
        full_legal_name: str,
        agreed: bool,
        ip_address: str = "",
        device_info: str = "",
        now: datetime | None = None,
    ) -> SectionValidation:
        """Record the signature, stamping time, IP, and device when it is valid."""
        editor = self.editors[SectionId.DIGITAL_SIGNATURE.value]
        name = " ".join(full_legal_name.split())
        if not agreed or len(name.split()) < 2:
            return await editor.apply_changes({"full_legal_name": name, "agreed": agreed})

        now = now or datetime.now(timezone.utc)
        return await editor.apply_changes({
            "full_legal_name": name,
            "agreed": True,
            "timestamp": now.isoformat(),
            "attestation_date": now.strftime("%B %d, %Y %I:%M:%S %p UTC"),
            "ip_address": ip_address,
            "device_info": device_info,
            "signature_version": SIGNATURE_VERSION,
        })

    # ── Documents ───────────────────────────────────────────

    async def upload_document(
        self,
        category: str,
        filename: str,
        content: bytes,
        timeout: float | None = None,
    ) -> UploadedDocument:
        """Store a document and attach it to the document uploads section.

        A timed-out upload is reported to the caller; the storage write
        itself is shielded and may still finish in the background.
        """
        if timeout is None:
            timeout = settings.upload_timeout_seconds
        try:
            document = await asyncio.wait_for(
                asyncio.shield(
                    self.gateway.upload_document(self.identity.id, category, filename, content)
                ),
                timeout,
            )
        except asyncio.TimeoutError:
            logger.warning(
                "Upload of %s timed out after %.0fs for user %s",
                category, timeout, self.identity.id,
            )
            raise UploadTimeoutError()

        editor = self.editors[SectionId.DOCUMENT_UPLOADS.value]
        stored = document.model_dump()
        if DOCUMENT_CATEGORIES[category].multiple:
            value = list(editor.data.get(category) or []) + [stored]
        else:
            value = stored
        await editor.apply_changes({category: value})
        return document

    def find_document(self, category: str, document_id: str) -> dict | None:
        stored = self.editors[SectionId.DOCUMENT_UPLOADS.value].data.get(category)
        documents = stored if isinstance(stored, list) else [stored]
        return next((d for d in documents if d and d.get("id") == document_id), None)

    async def remove_document(self, category: str, document_id: str | None = None) -> SectionValidation:
        editor = self.editors[SectionId.DOCUMENT_UPLOADS.value]
        if DOCUMENT_CATEGORIES[category].multiple:
            value = [
                doc for doc in editor.data.get(category) or []
                if document_id is not None and doc.get("id") != document_id
            ]
        else:
            value = None
        return await editor.apply_changes({category: value})
