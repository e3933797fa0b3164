from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Dict, List

from pydantic import BaseModel, ConfigDict


class DonationType(str, Enum):
    SHEEP = "sheep"
    COW = "cow"


class DonationStatus(str, Enum):
    PENDING = "pending"
    SENDING = "sending"
    DONE = "done"


class MediaType(str, Enum):
    IMAGE = "image"
    VIDEO = "video"


STATUS_ORDER = [DonationStatus.PENDING, DonationStatus.SENDING, DonationStatus.DONE]


def is_forward_transition(current: str, new: str) -> bool:
    """Status only moves pending -> sending -> done (staying put is allowed)."""
    return STATUS_ORDER.index(DonationStatus(new)) >= STATUS_ORDER.index(DonationStatus(current))


class AgentDTO(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    agent_name: str
    created_at: datetime
    total_donations: int = 0
    completed_donations: int = 0
    pending_donations: int = 0
    completion_percentage: int = 0
    sheep_count: int = 0
    cow_count: int = 0


class AssignmentDTO(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    agent_id: int
    donation_id: int
    assigned_at: datetime


class MediaDTO(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    donation_id: int
    type: MediaType
    file_path: str
    created_at: datetime


class NotificationDTO(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    donation_id: int
    message: str
    sent: bool
    created_at: datetime


@dataclass
class SplitResult:
    agents: List[AgentDTO]
    sheep_count: int
    cow_groups_count: int
    # agent id -> donation ids handed to that agent in this split
    allocation: Dict[int, List[int]] = field(default_factory=dict)
