"""
REST client for the planner backend.

JSON over HTTP. A requests.Session carries the session cookies between
calls (the backend authenticates by cookie) plus an optional bearer token.

Errors:
    NetworkError: transport failure (DNS, refused, timeout, ...)
    BackendError: non-2xx; the response body text is the message

Entity-mutating calls (lanes, cards, planner update) return the raw JSON
dict so the sync layer can tell which fields the server actually sent.
Fetch calls return schema objects.

This client never short-circuits temp ids; that decision belongs to the
sync layer.
"""
import logging
from typing import Any, Dict, Iterable, List, Optional
from urllib.parse import quote

import requests

from .config import PlannerConfig
from .errors import BackendError, NetworkError
from .schema import Planner, PlannerTemplate

logger = logging.getLogger(__name__)


def _seg(value: str) -> str:
    """Quote one path segment."""
    return quote(str(value), safe="")


class PlannerApiClient:
    """Thin wrapper around the planner REST endpoints."""

    def __init__(
        self,
        base_url: str,
        session: Optional[requests.Session] = None,
        timeout: float = 10.0,
        token: Optional[str] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.session = session or requests.Session()
        self.timeout = timeout
        if token:
            self.session.headers["Authorization"] = f"Bearer {token}"

    @classmethod
    def from_config(cls, cfg: PlannerConfig, session: Optional[requests.Session] = None) -> "PlannerApiClient":
        return cls(
            cfg.require_api_base(),
            session=session,
            timeout=cfg.request_timeout_secs,
            token=cfg.api_token,
        )

    # ── Transport ────────────────────────────────────────────

    def _request(
        self,
        method: str,
        path: str,
        payload: Optional[Dict[str, Any]] = None,
        params: Optional[Dict[str, str]] = None,
    ) -> requests.Response:
        url = f"{self.base_url}{path}"
        logger.debug(f"[API] {method} {path}")
        try:
            r = self.session.request(
                method,
                url,
                json=payload,
                params=params,
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            raise NetworkError(f"{method} {path} failed: {e}", cause=e) from e

        if not r.ok:
            raise BackendError(r.status_code, r.text or "")
        return r

    def _json(self, method: str, path: str, payload: Optional[Dict[str, Any]] = None,
              params: Optional[Dict[str, str]] = None) -> Any:
        r = self._request(method, path, payload, params)
        if r.status_code == 204 or not r.content:
            return None
        try:
            return r.json()
        except ValueError as e:
            raise BackendError(r.status_code, f"Invalid JSON from {method} {path}: {e}") from e

    # ── Templates ────────────────────────────────────────────

    def get_templates(self) -> List[PlannerTemplate]:
        data = self._json("GET", "/planner/templates") or []
        return [PlannerTemplate.from_dict(t) for t in data]

    def get_template(self, template_id: str) -> PlannerTemplate:
        data = self._json("GET", f"/planner/templates/{_seg(template_id)}") or {}
        return PlannerTemplate.from_dict(data)

    # ── Planners ─────────────────────────────────────────────

    def create_planner(self, template_id: str, title: str, description: str = "") -> Planner:
        data = self._json("POST", "/planner", {
            "template_id": template_id,
            "title": title,
            "description": description,
        })
        return Planner.from_dict(data or {})

    def get_planner(self, planner_id: str) -> Planner:
        data = self._json("GET", f"/planner/{_seg(planner_id)}")
        return Planner.from_dict(data or {})

    def update_planner(self, planner_id: str, title: str, description: str = "") -> Dict[str, Any]:
        return self._json("PUT", f"/planner/{_seg(planner_id)}", {
            "title": title,
            "description": description,
        }) or {}

    def delete_planner(self, planner_id: str) -> None:
        self._request("DELETE", f"/planner/{_seg(planner_id)}")

    # ── Lanes ────────────────────────────────────────────────

    def add_lane(self, planner_id: str, title: str, description: str, position: int,
                 color: Optional[str] = None) -> Dict[str, Any]:
        payload = {"title": title, "description": description, "position": position}
        if color:
            payload["color"] = color
        return self._json("POST", f"/planner/{_seg(planner_id)}/lane", payload) or {}

    def update_lane(self, planner_id: str, lane_id: str, title: str, description: str,
                    color: Optional[str] = None) -> Dict[str, Any]:
        payload = {"title": title, "description": description}
        if color:
            payload["color"] = color
        return self._json(
            "PUT", f"/planner/{_seg(planner_id)}/lane/{_seg(lane_id)}", payload
        ) or {}

    def delete_lane(self, planner_id: str, lane_id: str) -> None:
        self._request("DELETE", f"/planner/{_seg(planner_id)}/lane/{_seg(lane_id)}")

    def split_lane(self, planner_id: str, lane_id: str, new_title: str, new_description: str,
                   split_position: int, new_color: Optional[str] = None) -> Dict[str, Any]:
        payload = {"new_title": new_title, "split_position": split_position}
        if new_description:
            payload["new_description"] = new_description
        if new_color:
            payload["new_color"] = new_color
        return self._json(
            "POST", f"/planner/{_seg(planner_id)}/lane/{_seg(lane_id)}/split", payload
        ) or {}

    def unsplit_lane(self, planner_id: str, lane_id: str, target_lane_id: str) -> None:
        self._request(
            "PUT",
            f"/planner/{_seg(planner_id)}/lane/{_seg(lane_id)}/unsplit",
            params={"target": target_lane_id},
        )

    def reorder_lanes(self, planner_id: str, lane_ids: Iterable[str]) -> None:
        self._request(
            "PUT", f"/planner/{_seg(planner_id)}/lanes/reorder", {"lane_ids": list(lane_ids)}
        )

    # ── Cards ────────────────────────────────────────────────

    def add_card(self, planner_id: str, lane_id: str, title: str, content: str,
                 position: int) -> Dict[str, Any]:
        return self._json(
            "POST",
            f"/planner/{_seg(planner_id)}/lane/{_seg(lane_id)}/card",
            {"title": title, "content": content, "position": position},
        ) or {}

    def update_card(self, planner_id: str, lane_id: str, card_id: str, title: str,
                    content: str) -> Dict[str, Any]:
        return self._json(
            "PUT",
            f"/planner/{_seg(planner_id)}/lane/{_seg(lane_id)}/card/{_seg(card_id)}",
            {"title": title, "content": content},
        ) or {}

    def delete_card(self, planner_id: str, lane_id: str, card_id: str) -> None:
        self._request(
            "DELETE", f"/planner/{_seg(planner_id)}/lane/{_seg(lane_id)}/card/{_seg(card_id)}"
        )

    def reorder_cards(self, planner_id: str, lane_id: str, card_ids: Iterable[str]) -> None:
        self._request(
            "PUT",
            f"/planner/{_seg(planner_id)}/lane/{_seg(lane_id)}/cards/reorder",
            {"card_ids": list(card_ids)},
        )

    def move_card(self, planner_id: str, card_id: str, new_lane_id: str,
                  new_position: int) -> Dict[str, Any]:
        return self._json(
            "PUT",
            f"/planner/{_seg(planner_id)}/card/{_seg(card_id)}/move",
            {"new_lane_id": new_lane_id, "new_position": new_position},
        ) or {}

    # ── Markdown ─────────────────────────────────────────────

    def export_markdown(self, planner_id: str) -> str:
        return self._request("GET", f"/planner/{_seg(planner_id)}/export").text

    def import_markdown(self, markdown: str, template_id: str) -> Planner:
        data = self._json("POST", "/planner/import", {
            "markdown": markdown,
            "template_id": template_id,
        })
        return Planner.from_dict(data or {})
