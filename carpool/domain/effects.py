"""
Side effects produced by domain operations.

Domain methods never touch storage or the notification backend; they
return a list of these value objects and the service layer applies them
after the new aggregate state has been persisted.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Union

from .enums import HistoryRole, NotificationType
from .impact import EnvironmentalImpact


@dataclass(frozen=True)
class Notify:
    recipient_id: int
    type: NotificationType
    title: str
    message: str
    sender_id: Optional[int] = None
    ride_id: Optional[int] = None
    transaction_id: Optional[int] = None


@dataclass(frozen=True)
class LinkHistory:
    user_id: int
    ride_id: int
    role: HistoryRole


@dataclass(frozen=True)
class UnlinkHistory:
    user_id: int
    ride_id: int
    role: HistoryRole


@dataclass(frozen=True)
class AccrueImpact:
    user_id: int
    impact: EnvironmentalImpact


Effect = Union[Notify, LinkHistory, UnlinkHistory, AccrueImpact]
