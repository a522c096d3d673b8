"""
streakbot.services.config_flow — Timed Interactive Configuration
=================================================================

Admin configuration is conversational: the bot asks for a value ("mention
the channel for level-up messages") and takes the admin's **next message**
in that channel as the answer, if it arrives within
``CONFIG_FLOW_TIMEOUT_SECONDS``.

Each pending question is a :class:`ConfigFlow` with three states::

    PROMPTED ──offer(reply before deadline)──▶ COLLECTED
        │
        └──expire(now ≥ deadline) / late offer──▶ TIMED_OUT

The clock is always passed in, so the machine is tested without sleeping.
"""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass
from threading import Lock

from streakbot.constants import CONFIG_FLOW_TIMEOUT_SECONDS

logger = logging.getLogger(__name__)


class FlowState(enum.Enum):
    PROMPTED = "prompted"
    COLLECTED = "collected"
    TIMED_OUT = "timed_out"


# Human prompt per configurable key
PROMPTS: dict[str, str] = {
    "streak.thresholdMessages": "Please enter the number of messages required per day:",
    "streak.channelId": "Please mention the channel for streak announcements (e.g., #channel-name):",
    "level.xpPerMessage": "Please enter the XP per message:",
    "level.levelMultiplier": "Please enter the XP increment per level:",
    "level.channelId": "Please mention the channel for level-up messages (e.g., #channel-name):",
    "messageLeader.channelId": "Please mention the channel for message leader announcements:",
    "messageLeader.roleId": "Please mention the role for message leaders (e.g., @role-name):",
    "reports.weeklyChannelId": "Please mention the channel for weekly reports:",
    "reports.monthlyChannelId": "Please mention the channel for monthly reports:",
}


@dataclass(slots=True)
class ConfigFlow:
    tenant_id: str
    channel_id: str
    user_id: str
    key: str
    started_at: float
    timeout: float = CONFIG_FLOW_TIMEOUT_SECONDS
    state: FlowState = FlowState.PROMPTED
    value: str | None = None

    @property
    def deadline(self) -> float:
        return self.started_at + self.timeout

    @property
    def prompt(self) -> str:
        return PROMPTS.get(self.key, f"Please enter the new value for {self.key}:")

    def remaining(self, now: float) -> float:
        return max(0.0, self.deadline - now)

    def matches(self, tenant_id: str, channel_id: str, user_id: str) -> bool:
        return (tenant_id, channel_id, user_id) == (self.tenant_id, self.channel_id, self.user_id)

    def offer(self, tenant_id: str, channel_id: str, user_id: str, content: str, now: float) -> bool:
        """Try to answer the prompt.  Returns True if *content* was collected."""
        if self.state is not FlowState.PROMPTED or not self.matches(tenant_id, channel_id, user_id):
            return False
        if now >= self.deadline:
            self.state = FlowState.TIMED_OUT
            return False
        self.value = content
        self.state = FlowState.COLLECTED
        return True

    def expire(self, now: float) -> bool:
        """Move to TIMED_OUT if the deadline passed.  Returns True on transition."""
        if self.state is FlowState.PROMPTED and now >= self.deadline:
            self.state = FlowState.TIMED_OUT
            return True
        return False


class ConfigFlowRegistry:
    """Pending flows, at most one per (tenant, channel, user).  Thread-safe."""

    def __init__(self, timeout: float = CONFIG_FLOW_TIMEOUT_SECONDS) -> None:
        self.timeout = timeout
        self._lock = Lock()
        self._flows: dict[tuple[str, str, str], ConfigFlow] = {}

    def start(self, tenant_id: str, channel_id: str, user_id: str, key: str, now: float) -> ConfigFlow:
        flow = ConfigFlow(tenant_id, channel_id, user_id, key, started_at=now, timeout=self.timeout)
        with self._lock:
            self._flows[(tenant_id, channel_id, user_id)] = flow
        return flow

    def offer(
        self, tenant_id: str, channel_id: str, user_id: str, content: str, now: float,
    ) -> ConfigFlow | None:
        """Route a message to its pending flow; returns the flow if collected."""
        with self._lock:
            flow = self._flows.get((tenant_id, channel_id, user_id))
            if flow is None:
                return None
            collected = flow.offer(tenant_id, channel_id, user_id, content, now)
            if flow.state is not FlowState.PROMPTED:
                del self._flows[(tenant_id, channel_id, user_id)]
            return flow if collected else None

    def sweep(self, now: float) -> list[ConfigFlow]:
        """Expire and drop overdue flows."""
        with self._lock:
            expired = [f for f in self._flows.values() if f.expire(now)]
            for flow in expired:
                del self._flows[(flow.tenant_id, flow.channel_id, flow.user_id)]
        if expired:
            logger.debug("Expired %d config flows", len(expired))
        return expired

    def __len__(self) -> int:
        with self._lock:
            return len(self._flows)
