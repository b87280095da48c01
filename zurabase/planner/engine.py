"""
PlannerEngine: the single entry point for a board UI.

    engine = PlannerEngine.from_config()
    engine.open("42")
    engine.dispatch(MoveCard("c1", "lane-2", 0))
    engine.poll()            # call from the UI loop; fires the auto-save

Without an API endpoint the engine runs local-only: every command is
applied and reported as bypassed.
"""
import logging
from typing import List, Optional

import requests

from .api import PlannerApiClient
from .autosave import AutoSaveScheduler, SaveState
from .commands import Command
from .config import PlannerConfig
from .errors import BackendError, ConfigError, NetworkError, PlannerError, ValidationError
from .markdown import export_markdown, import_markdown
from .schema import Planner, PlannerTemplate, TEMP_PREFIX, make_temp_id, utc_now
from .store import PlannerStore
from .sync import SyncCoordinator, SyncResult
from .templates import find_template, lane_commands

logger = logging.getLogger(__name__)


class PlannerEngine:
    """Store, sync and auto-save wired together."""

    def __init__(
        self,
        config: Optional[PlannerConfig] = None,
        api: Optional[PlannerApiClient] = None,
        clock=None,
    ):
        self.config = config or PlannerConfig()
        self.api = api
        self.store = PlannerStore()
        self.sync = SyncCoordinator(
            self.store,
            api,
            discard_stale_confirmations=self.config.discard_stale_confirmations,
        )
        self.autosave = AutoSaveScheduler(
            self.store,
            self.sync.save_metadata,
            debounce_secs=self.config.autosave_debounce_secs,
            clock=clock,
        )
        self.templates: List[PlannerTemplate] = []
        self.errors: List[PlannerError] = []
        self.sync.subscribe("sync_failed", self._on_sync_failed)

    @classmethod
    def from_config(
        cls,
        config: Optional[PlannerConfig] = None,
        session: Optional[requests.Session] = None,
        clock=None,
    ) -> "PlannerEngine":
        config = config or PlannerConfig.load()
        api = PlannerApiClient.from_config(config, session) if config.api_base else None
        if api is None:
            logger.info("No planner API configured, running local-only")
        return cls(config, api, clock)

    # ── State ────────────────────────────────────────────────

    @property
    def planner(self) -> Optional[Planner]:
        return self.store.planner

    @property
    def save_state(self) -> SaveState:
        return self.autosave.state

    def _on_sync_failed(self, command, error):
        self.errors.append(error)

    def _record(self, error: PlannerError) -> None:
        logger.warning(f"{error}")
        self.errors.append(error)

    def _require_api(self) -> PlannerApiClient:
        if self.api is None:
            raise ConfigError("No planner API endpoint configured")
        return self.api

    def _require_planner(self) -> Planner:
        if self.store.planner is None:
            raise ValidationError("No planner is open")
        return self.store.planner

    def _show(self, planner: Planner) -> Planner:
        self.autosave.reset()
        self.sync.reset()
        return self.store.load(planner)

    # ── Planners ─────────────────────────────────────────────

    def load_templates(self) -> List[PlannerTemplate]:
        """Fetch the template catalog. Failures leave the cached list."""
        if self.api is None:
            return self.templates
        try:
            self.templates = self.api.get_templates()
        except (NetworkError, BackendError) as e:
            self._record(e)
        return self.templates

    def open(self, planner_id: str) -> Planner:
        """Fetch a planner from the backend and make it current. Errors propagate."""
        planner = self._require_api().get_planner(planner_id)
        logger.info(f"Opened planner {planner.id} ({planner.card_count()} cards)")
        return self._show(planner)

    def load(self, planner: Planner) -> Planner:
        """Make an in-memory planner current."""
        return self._show(planner)

    def create(self, template_id: str, title: str, description: str = "") -> Planner:
        """
        Create a planner from a template.

        A temp planner with the template's lanes is shown at once. If the
        backend then creates the real planner it replaces the temp one and
        gets its own lanes; otherwise the temp planner stays and the error
        is recorded.
        """
        if not (title or "").strip():
            raise ValidationError("Planner title is required")

        if not self.templates:
            self.load_templates()
        template = find_template(self.templates, template_id)

        now = utc_now()
        self._show(Planner(
            id=make_temp_id(TEMP_PREFIX),
            title=title,
            description=description or "",
            template_id=template_id,
            created_at=now,
            updated_at=now,
        ))
        self._add_template_lanes(template)
        if self.api is None:
            return self.store.planner

        try:
            created = self.api.create_planner(template_id, title, description or "")
        except (NetworkError, BackendError) as e:
            self._record(e)
            return self.store.planner

        logger.info(f"Created planner {created.id} from template {template_id}")
        self._show(created)
        if not created.lanes:
            self._add_template_lanes(template)
        return self.store.planner

    def _add_template_lanes(self, template: Optional[PlannerTemplate]) -> None:
        commands = lane_commands(template, self.config.lane_colors, self.config.default_lane_color)
        for result in self.sync.dispatch_all(commands):
            if not result.ok:
                logger.warning(f"Predefined lane not created: {result.error}")
                break

    # ── Mutations ────────────────────────────────────────────

    def dispatch(self, command: Command) -> SyncResult:
        """Apply a command optimistically and sync it. Raises ValidationError."""
        self._require_planner()
        return self.sync.dispatch(command)

    def poll(self) -> bool:
        return self.autosave.poll()

    def save(self) -> bool:
        return self.autosave.flush()

    # ── Markdown ─────────────────────────────────────────────

    def export_markdown(self, remote: bool = False) -> str:
        planner = self._require_planner()
        if remote:
            return self._require_api().export_markdown(planner.id)
        return export_markdown(planner)

    def import_markdown(self, text: str, template_id: str = "", remote: bool = False) -> Planner:
        """Open markdown as a planner: a local temp planner, or one the backend creates."""
        if remote:
            planner = self._require_api().import_markdown(text, template_id)
        else:
            planner = import_markdown(text, template_id)
        logger.info(f"Imported planner {planner.id} with {len(planner.lanes)} lanes")
        return self._show(planner)
