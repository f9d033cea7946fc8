from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Dict, List, Optional

from volbot.domain.models import AssetUnit, Direction, SwapAttemptRecord


@dataclass
class TradeStats:
    """Attempt counters and cumulative volume since startup."""

    total_attempts: int = 0
    success_count: int = 0
    failure_count: int = 0
    cumulative_volume_base: Decimal = Decimal(0)
    cumulative_volume_usd: Decimal = Decimal(0)
    started_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def record(self, record: SwapAttemptRecord) -> None:
        """Count one pipeline invocation. Volume is only added for successes."""
        self.total_attempts += 1
        if not record.success:
            self.failure_count += 1
            return

        self.success_count += 1
        if record.input_unit is AssetUnit.BASE:
            self.cumulative_volume_base += record.input_amount
        elif record.output_amount is not None:
            self.cumulative_volume_base += record.output_amount
        if record.usd_notional is not None:
            self.cumulative_volume_usd += record.usd_notional

    def run_time(self, now: Optional[datetime] = None) -> str:
        now = now or datetime.now(timezone.utc)
        seconds = max(0, int((now - self.started_at).total_seconds()))
        hours, rem = divmod(seconds, 3600)
        minutes, secs = divmod(rem, 60)
        return f"{hours}h {minutes}m {secs}s"

    def snapshot(self) -> Dict[str, Any]:
        return {
            "total": self.total_attempts,
            "succeeded": self.success_count,
            "failed": self.failure_count,
            "volume_sol": str(self.cumulative_volume_base),
            "volume_usd": str(self.cumulative_volume_usd),
            "run_time": self.run_time(),
        }

    def format_summary(self, next_direction: Direction) -> List[str]:
        return [
            "--- STATISTICS ---",
            f"Total transactions: {self.total_attempts}",
            f"Successful: {self.success_count}",
            f"Failed: {self.failure_count}",
            f"Total volume: {self.cumulative_volume_base:.6f} SOL (≈ ${self.cumulative_volume_usd:.2f})",
            f"Run time: {self.run_time()}",
            f"Next action: {next_direction.value}",
        ]
