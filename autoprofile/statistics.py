"""Execution statistics for actions and profiles."""

from __future__ import annotations

import threading
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Dict, List, Optional

from .models import Action, ActionStatistics, Profile, ProfileStatistics


@dataclass
class StatisticsSummary:
    total_actions_executed: int
    total_elapsed_seconds: float
    average_success_rate: float
    total_profiles: int
    most_used_actions: List[ActionStatistics] = field(default_factory=list)
    most_failing_actions: List[ActionStatistics] = field(default_factory=list)

    def formatted_elapsed(self) -> str:
        seconds = self.total_elapsed_seconds
        if seconds >= 3600:
            return f"{seconds / 3600:.1f} h"
        if seconds >= 60:
            return f"{seconds / 60:.1f} min"
        return f"{seconds:.1f} s"


class StatisticsService:
    """Passive observer of the engine's execution stream."""

    def __init__(
        self,
        action_stats: Optional[List[ActionStatistics]] = None,
        profile_stats: Optional[List[ProfileStatistics]] = None,
    ) -> None:
        self._actions: Dict[str, ActionStatistics] = {s.action_id: s for s in (action_stats or [])}
        self._profiles: Dict[str, ProfileStatistics] = {s.profile_id: s for s in (profile_stats or [])}
        self._lock = threading.Lock()

    def record_action(self, action: Action, success: bool, elapsed_ms: float) -> None:
        now = datetime.now()
        with self._lock:
            stat = self._actions.get(action.id)
            if stat is None:
                stat = ActionStatistics(action_id=action.id, action_name=action.name, first_execution=now)
                self._actions[action.id] = stat
            stat.execution_count += 1
            stat.total_execution_ms += elapsed_ms
            stat.last_execution = now
            if success:
                stat.success_count += 1
            else:
                stat.failure_count += 1

    def record_profile(self, profile: Profile, elapsed_seconds: float) -> None:
        with self._lock:
            stat = self._profiles.get(profile.id)
            if stat is None:
                stat = ProfileStatistics(profile_id=profile.id, profile_name=profile.name)
                self._profiles[profile.id] = stat
            stat.execution_count += 1
            stat.total_elapsed_seconds += elapsed_seconds
            stat.last_used = datetime.now()

    def action_statistics(self) -> List[ActionStatistics]:
        with self._lock:
            return [replace(s) for s in self._actions.values()]

    def profile_statistics(self) -> List[ProfileStatistics]:
        with self._lock:
            return [replace(s) for s in self._profiles.values()]

    def total_actions_executed(self) -> int:
        return sum(s.execution_count for s in self.action_statistics())

    def average_success_rate(self) -> float:
        stats = self.action_statistics()
        total = sum(s.execution_count for s in stats)
        if total == 0:
            return 100.0
        return sum(s.success_count for s in stats) / total * 100

    def most_used(self, count: int = 10) -> List[ActionStatistics]:
        return sorted(self.action_statistics(), key=lambda s: s.execution_count, reverse=True)[:count]

    def most_failing(self, count: int = 10) -> List[ActionStatistics]:
        failing = [s for s in self.action_statistics() if s.failure_count > 0]
        return sorted(failing, key=lambda s: s.failure_count, reverse=True)[:count]

    def summary(self) -> StatisticsSummary:
        profiles = self.profile_statistics()
        return StatisticsSummary(
            total_actions_executed=self.total_actions_executed(),
            total_elapsed_seconds=sum(p.total_elapsed_seconds for p in profiles),
            average_success_rate=self.average_success_rate(),
            total_profiles=len(profiles),
            most_used_actions=self.most_used(5),
            most_failing_actions=self.most_failing(5),
        )
