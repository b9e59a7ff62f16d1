from dataclasses import dataclass
from enum import Enum
from typing import Any


class Role(str, Enum):
    USER = "user"
    ADMIN = "admin"

    @classmethod
    def parse(cls, value: str | None) -> "Role | None":
        if value is None:
            return None
        try:
            return cls(value.strip().lower())
        except ValueError:
            return None


@dataclass(frozen=True)
class AttendanceRecord:
    id: int
    barcode: str
    device_id: str
    timestamp: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "barcode": self.barcode,
            "device_id": self.device_id,
            "timestamp": self.timestamp,
        }


@dataclass(frozen=True)
class UserAccount:
    """Public shape of an account. Never carries the password hash."""

    id: int
    username: str
    role: Role
    created_at: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "username": self.username,
            "role": self.role.value,
            "created_at": self.created_at,
        }


@dataclass(frozen=True)
class UserCredentials:
    """Internal shape used only by the credential-check path."""

    account: UserAccount
    password_hash: str


@dataclass(frozen=True)
class AttendanceStats:
    total: int
    total_today: int
    total_week: int
    unique_today: int
    most_active_device: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "total": self.total,
            "total_today": self.total_today,
            "total_week": self.total_week,
            "unique_today": self.unique_today,
            "most_active_device": self.most_active_device,
        }


@dataclass(frozen=True)
class DeviceActivity:
    device_id: str
    scans_today: int

    def to_dict(self) -> dict[str, Any]:
        return {"device_id": self.device_id, "scans_today": self.scans_today}
