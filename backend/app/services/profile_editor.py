"""Section editor: one section's local copy, its validation, and autosave.

Every section of the wizard uses this one editor and one synchronisation
policy: edits are validated immediately, and the upward push to the
wizard controller is debounced (each edit restarts the timer, so only the
last edit of a burst is persisted). Pushes never overlap: a push that
starts while another is in flight waits for it.

State machine per editor:

    EMPTY ──hydrate──▶ HYDRATED
      │                   │
      └──── edit ─────────┴──▶ USER_EDITING ──timer fires──▶ SAVING
                                   ▲                           │
                                   └──────── push settled ─────┘

Once the editor has left EMPTY/HYDRATED it is "dirty": later hydration
pushes only fill fields the user has not edited.
"""

import asyncio
import copy
import enum
import logging
from typing import Any, Awaitable, Callable

from app.schemas.profile import normalize_section
from app.services.profile_sections import SectionDefinition, SectionValidation

logger = logging.getLogger(__name__)

# (data, is_complete, skip_persist)
UpdateCallback = Callable[[dict, bool, bool], Awaitable[None]]


class EditorState(str, enum.Enum):
    EMPTY = "empty"
    HYDRATED = "hydrated"
    USER_EDITING = "user_editing"
    SAVING = "saving"


class SectionEditor:
    def __init__(
        self,
        section: SectionDefinition,
        on_update: UpdateCallback,
        autosave_delay: float = 0.4,
    ):
        self.section = section
        self.autosave_delay = autosave_delay
        self._on_update = on_update

        self.data: dict = normalize_section(section.id.value, None)
        self.state = EditorState.EMPTY
        self.edited_fields: set[str] = set()
        self.validation = section.validate(self.data)

        self._prefilled = False
        self._timer: asyncio.Task | None = None
        self._push_lock = asyncio.Lock()
        self._saving: asyncio.Task | None = None

    @property
    def section_id(self) -> str:
        return self.section.id.value

    @property
    def is_dirty(self) -> bool:
        return self.state in (EditorState.USER_EDITING, EditorState.SAVING)

    @property
    def has_pending_push(self) -> bool:
        return self._timer is not None

    def _revalidate(self) -> SectionValidation:
        self.validation = self.section.validate(self.data)
        return self.validation

    # ── Inputs that do not come from the user ───────────────

    async def hydrate(self, stored: Any) -> bool:
        """Load a stored value. Never triggers a write.

        Returns False when there was nothing to load.
        """
        if stored is None:
            return False
        incoming = normalize_section(self.section_id, stored)

        if self.is_dirty:
            for name, value in incoming.items():
                if name not in self.edited_fields:
                    self.data[name] = value
        else:
            self.data = incoming
            self.state = EditorState.HYDRATED

        self._revalidate()
        await self._on_update(copy.deepcopy(self.data), self.validation.is_complete, True)
        return True

    async def prefill(self, values: dict) -> bool:
        """One-shot fallback fill (e.g. name and email from the identity provider).

        Only applies while nothing was loaded or typed, and only to blank
        fields. The result is shown but not written back.
        """
        if self._prefilled or self.state is not EditorState.EMPTY:
            return False
        self._prefilled = True

        applied = {
            name: value
            for name, value in values.items()
            if value and name in self.data and not str(self.data[name] or "").strip()
        }
        if not applied:
            return False

        self.data.update(applied)
        self._revalidate()
        await self._on_update(copy.deepcopy(self.data), self.validation.is_complete, True)
        return True

    # ── User edits ──────────────────────────────────────────

    async def on_field_change(self, name: str, value: Any) -> SectionValidation:
        return await self.apply_changes({name: value})

    async def apply_changes(self, changes: dict) -> SectionValidation:
        """Write user-originated field values, validate, and schedule the push.

        Values are never rejected; problems show up in `validation.errors`.
        """
        unknown = set(changes) - set(self.data)
        if unknown:
            raise ValueError(
                f"Unknown field(s) for {self.section_id}: {', '.join(sorted(unknown))}"
            )

        for name, value in changes.items():
            self.data[name] = value
            if self.section.on_change:
                self.section.on_change(self.data, name, value)
            self.edited_fields.add(name)

        if self.state is not EditorState.SAVING:
            self.state = EditorState.USER_EDITING
        self._revalidate()

        if self.autosave_delay <= 0:
            await self._push()
        else:
            self._restart_timer()
        return self.validation

    # ── Debounced push ──────────────────────────────────────

    def _restart_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
        self._timer = asyncio.get_running_loop().create_task(self._debounced_push())

    async def _debounced_push(self) -> None:
        await asyncio.sleep(self.autosave_delay)
        # Past the debounce window; a new edit schedules a separate push
        self._saving, self._timer = self._timer, None
        await self._push()

    async def _push(self) -> None:
        # One push at a time; a waiting push snapshots the data once it runs,
        # so the last write always carries the newest values.
        async with self._push_lock:
            self.state = EditorState.SAVING
            try:
                await self._on_update(
                    copy.deepcopy(self.data), self.validation.is_complete, False
                )
            finally:
                self.state = EditorState.USER_EDITING

    async def flush(self) -> None:
        """Push the pending edit now, or wait for the push already running."""
        if self._timer is not None:
            timer, self._timer = self._timer, None
            timer.cancel()
            await self._push()
        elif self._saving is not None and not self._saving.done():
            await self._saving
        else:
            async with self._push_lock:
                pass

    def cancel(self) -> None:
        """Drop the pending push (e.g. the session is being discarded)."""
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
            logger.debug("Discarded pending autosave for %s", self.section_id)
