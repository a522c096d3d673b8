"""
tests/test_config_flow.py — Timed Interactive Configuration
============================================================

The clock is passed in explicitly; nothing here sleeps.
"""

from __future__ import annotations

from streakbot.services.config_flow import ConfigFlow, ConfigFlowRegistry, FlowState


class TestConfigFlow:
    def _flow(self) -> ConfigFlow:
        return ConfigFlow("g", "c", "u", "level.channelId", started_at=100.0, timeout=15)

    def test_reply_before_deadline_collected(self):
        flow = self._flow()
        assert flow.offer("g", "c", "u", "<#5>", now=110.0) is True
        assert flow.state is FlowState.COLLECTED
        assert flow.value == "<#5>"

    def test_reply_at_deadline_times_out(self):
        flow = self._flow()
        assert flow.offer("g", "c", "u", "<#5>", now=115.0) is False
        assert flow.state is FlowState.TIMED_OUT
        assert flow.value is None

    def test_other_user_ignored(self):
        flow = self._flow()
        assert flow.offer("g", "c", "someone-else", "<#5>", now=101.0) is False
        assert flow.state is FlowState.PROMPTED

    def test_second_reply_ignored(self):
        flow = self._flow()
        flow.offer("g", "c", "u", "first", now=101.0)
        assert flow.offer("g", "c", "u", "second", now=102.0) is False
        assert flow.value == "first"

    def test_expire(self):
        flow = self._flow()
        assert flow.expire(now=114.9) is False
        assert flow.expire(now=115.0) is True
        assert flow.expire(now=200.0) is False
        assert flow.state is FlowState.TIMED_OUT

    def test_remaining_and_prompt(self):
        flow = self._flow()
        assert flow.remaining(110.0) == 5.0
        assert flow.remaining(500.0) == 0.0
        assert "level-up messages" in flow.prompt

    def test_unknown_key_has_generic_prompt(self):
        flow = ConfigFlow("g", "c", "u", "custom.key", started_at=0.0)
        assert flow.prompt == "Please enter the new value for custom.key:"


class TestRegistry:
    def test_offer_routes_and_removes(self):
        registry = ConfigFlowRegistry(timeout=15)
        registry.start("g", "c", "u", "streak.thresholdMessages", now=0.0)

        flow = registry.offer("g", "c", "u", "5", now=3.0)

        assert flow is not None and flow.value == "5"
        assert len(registry) == 0

    def test_unrelated_message_leaves_flow_pending(self):
        registry = ConfigFlowRegistry(timeout=15)
        registry.start("g", "c", "u", "streak.thresholdMessages", now=0.0)

        assert registry.offer("g", "c", "other", "5", now=3.0) is None
        assert len(registry) == 1

    def test_late_offer_drops_flow(self):
        registry = ConfigFlowRegistry(timeout=15)
        registry.start("g", "c", "u", "streak.thresholdMessages", now=0.0)

        assert registry.offer("g", "c", "u", "5", now=20.0) is None
        assert len(registry) == 0

    def test_restart_replaces_pending_flow(self):
        registry = ConfigFlowRegistry(timeout=15)
        registry.start("g", "c", "u", "level.xpPerMessage", now=0.0)
        registry.start("g", "c", "u", "level.levelMultiplier", now=1.0)

        flow = registry.offer("g", "c", "u", "2", now=2.0)

        assert flow.key == "level.levelMultiplier"
        assert len(registry) == 0

    def test_sweep(self):
        registry = ConfigFlowRegistry(timeout=15)
        registry.start("g", "c", "a", "level.xpPerMessage", now=0.0)
        registry.start("g", "c", "b", "level.xpPerMessage", now=10.0)

        expired = registry.sweep(now=16.0)

        assert [f.user_id for f in expired] == ["a"]
        assert expired[0].state is FlowState.TIMED_OUT
        assert len(registry) == 1
