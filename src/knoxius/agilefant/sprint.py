"""
Sprint (Agilefant "iteration") resources.

    get_sprint(session, 42)          GET  ajax/iterationData.action?iterationId=42
    get_sprints(session, 7)          POST ajax/projectIterations.action  projectId=7
    get_burndown_image(session, 42)  GET  drawIterationBurndown.action?backlogId=42&timeZoneOffset=720

Every fetcher raises ``httpx.HTTPStatusError`` on a non-success status.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from .session import AgilefantSession


logger = logging.getLogger(__name__)

# Minutes east of UTC that Agilefant draws burndown charts in (NZ).
BURNDOWN_TIMEZONE_OFFSET = 720


def _from_epoch_millis(value: Optional[int]) -> Optional[datetime]:
    if value is None:
        return None
    return datetime.fromtimestamp(value / 1000, tz=timezone.utc)


@dataclass
class Sprint:
    """
    One sprint as Agilefant reports it.

    Only the commonly used fields are typed; the full JSON object stays in
    ``raw``.
    """

    id: Optional[int]
    name: str
    description: str = ""
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    backlog_size: Optional[int] = None
    schedule_status: Optional[str] = None
    assignees: List[Dict[str, Any]] = field(default_factory=list)
    ranked_stories: List[Dict[str, Any]] = field(default_factory=list)
    raw: Dict[str, Any] = field(default_factory=dict, repr=False)

    @classmethod
    def from_json(cls, data: Dict[str, Any]) -> "Sprint":
        return cls(
            id=data.get("id"),
            name=data.get("name") or "",
            description=data.get("description") or "",
            start_date=_from_epoch_millis(data.get("startDate")),
            end_date=_from_epoch_millis(data.get("endDate")),
            backlog_size=data.get("backlogSize"),
            schedule_status=data.get("scheduleStatus"),
            assignees=data.get("assignees") or [],
            ranked_stories=data.get("rankedStories") or [],
            raw=data,
        )

    def to_dict(self) -> Dict[str, Any]:
        """JSON-friendly view with ISO 8601 dates."""
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "startDate": self.start_date.isoformat() if self.start_date else None,
            "endDate": self.end_date.isoformat() if self.end_date else None,
            "backlogSize": self.backlog_size,
            "scheduleStatus": self.schedule_status,
            "assignees": self.assignees,
            "rankedStories": self.ranked_stories,
        }


@dataclass
class BurndownImage:
    content_type: str
    data: bytes


def get_sprint(session: AgilefantSession, sprint_id: int) -> Sprint:
    response = session.get(f"ajax/iterationData.action?iterationId={sprint_id}")
    response.raise_for_status()
    return Sprint.from_json(response.json())


def get_sprints(session: AgilefantSession, project_id: int) -> List[Sprint]:
    """All sprints of a project, in the order Agilefant returns them."""
    response = session.post("ajax/projectIterations.action", data={"projectId": str(project_id)})
    response.raise_for_status()
    sprints = [Sprint.from_json(item) for item in response.json()]
    logger.debug(f"Project {project_id} has {len(sprints)} sprints")
    return sprints


def get_burndown_image(session: AgilefantSession, sprint_id: int) -> BurndownImage:
    response = session.get(
        f"drawIterationBurndown.action?backlogId={sprint_id}"
        f"&timeZoneOffset={BURNDOWN_TIMEZONE_OFFSET}"
    )
    response.raise_for_status()
    return BurndownImage(
        content_type=response.headers.get("Content-Type", "image/png"),
        data=response.content,
    )
