"""
EPG (Electronic Program Guide) data models.
"""
from pydantic import BaseModel
from datetime import datetime
from typing import Optional


class EpgProgram(BaseModel):
    """TV program from a channel's short EPG listing."""
    id: str
    channel_id: str
    title: str
    description: Optional[str] = None
    start: datetime
    end: datetime
    start_timestamp: float  # epoch seconds
    end_timestamp: float
    is_live: bool = False
    progress: Optional[int] = None  # 0-100, set for the airing program

    @property
    def duration_minutes(self) -> int:
        """Calculate program duration in minutes."""
        return int((self.end_timestamp - self.start_timestamp) / 60)

    def is_airing(self, now: float) -> bool:
        """Whether ``now`` (epoch seconds) falls within [start, end)."""
        return self.start_timestamp <= now < self.end_timestamp


class NowPlaying(BaseModel):
    """Current and next program for one channel."""
    channel_id: str
    current: Optional[EpgProgram] = None
    next: Optional[EpgProgram] = None
