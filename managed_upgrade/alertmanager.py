"""Managing silences through the Alertmanager v2 API."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Iterable, Mapping, Optional

import requests

SILENCE_STATE_ACTIVE = "active"

_TIME_PARTS = re.compile(r"^(.*?)(\.\d+)?([+-]\d{2}:\d{2})?$")


class AlertManagerError(Exception):
    """A request to Alertmanager failed."""


def _format_time(ts: datetime) -> str:
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    text = ts.astimezone(timezone.utc).isoformat(timespec="milliseconds")
    return text.replace("+00:00", "Z")


def _parse_time(text: str) -> datetime:
    text = text.strip()
    if text[-1:] in ("Z", "z"):
        text = text[:-1] + "+00:00"
    match = _TIME_PARTS.match(text)
    if match is None:
        raise AlertManagerError(f"invalid timestamp {text!r}")
    base, fraction, offset = match.groups()
    if fraction:
        base += "." + fraction[1:7].ljust(6, "0")
    parsed = datetime.fromisoformat(base + (offset or "+00:00"))
    return parsed


@dataclass
class Matcher:
    """A label matcher of a silence."""

    name: str
    value: str
    is_regex: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {"name": self.name, "value": self.value, "isRegex": self.is_regex}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Matcher":
        return cls(
            name=data.get("name", ""),
            value=data.get("value", ""),
            is_regex=bool(data.get("isRegex", False)),
        )


@dataclass
class Silence:
    """A silence as stored by Alertmanager."""

    matchers: list[Matcher]
    starts_at: datetime
    ends_at: datetime
    created_by: str
    comment: str
    id: str = ""
    state: str = ""
    updated_at: Optional[datetime] = field(default=None, compare=False)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Silence":
        updated = data.get("updatedAt")
        return cls(
            matchers=[Matcher.from_dict(m) for m in data.get("matchers") or []],
            starts_at=_parse_time(data["startsAt"]),
            ends_at=_parse_time(data["endsAt"]),
            created_by=data.get("createdBy", ""),
            comment=data.get("comment", ""),
            id=data.get("id", ""),
            state=(data.get("status") or {}).get("state", ""),
            updated_at=_parse_time(updated) if updated else None,
        )


SilencePredicate = Callable[[Silence], bool]


class AlertManagerSilenceClient:
    """Creates, lists, updates and deletes Alertmanager silences."""

    def __init__(
        self,
        base_url: str,
        session: Optional[requests.Session] = None,
        timeout: Optional[float] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.session = session or requests.Session()
        self.timeout = timeout

    def _request(self, method: str, path: str, **kwargs: Any) -> requests.Response:
        url = f"{self.base_url}/api/v2{path}"
        try:
            response = self.session.request(method, url, timeout=self.timeout, **kwargs)
            response.raise_for_status()
        except requests.RequestException as exc:
            raise AlertManagerError(f"{method} {url} failed: {exc}") from exc
        return response

    def create(
        self,
        matchers: Iterable[Matcher],
        starts_at: datetime,
        ends_at: datetime,
        creator: str,
        comment: str,
    ) -> str:
        """Create a silence and return its id."""
        body = {
            "matchers": [m.to_dict() for m in matchers],
            "startsAt": _format_time(starts_at),
            "endsAt": _format_time(ends_at),
            "createdBy": creator,
            "comment": comment,
        }
        response = self._request("POST", "/silences", json=body)
        try:
            return response.json().get("silenceID", "")
        except ValueError:
            return ""

    def list(self, filters: Iterable[str] = ()) -> list[Silence]:
        """List silences, optionally limited by matcher filter expressions."""
        params = {"filter": list(filters)}
        response = self._request("GET", "/silences", params=params)
        return [Silence.from_dict(item) for item in response.json() or []]

    def get(self, silence_id: str) -> Silence:
        response = self._request("GET", f"/silence/{silence_id}")
        return Silence.from_dict(response.json())

    def delete(self, silence_id: str) -> None:
        self._request("DELETE", f"/silence/{silence_id}")

    def update(self, silence_id: str, ends_at: datetime) -> None:
        """Move a silence's end time by replacing it with a new silence."""
        current = self.get(silence_id)
        try:
            self.create(current.matchers, current.starts_at, ends_at, current.created_by, current.comment)
        except AlertManagerError as exc:
            raise AlertManagerError(f"unable to create replacement silence: {exc}") from exc

        if current.state == SILENCE_STATE_ACTIVE:
            try:
                self.delete(current.id)
            except AlertManagerError as exc:
                raise AlertManagerError(f"unable to remove replaced silence: {exc}") from exc

    def filter(self, *args: SilencePredicate) -> list[Silence]:
        """Silences for which every predicate holds."""
        return [s for s in self.list() if all(predicate(s) for predicate in args)]