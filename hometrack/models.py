"""Data models shared by the local store, the sync queue and the remote boundary.

All timestamps kept locally are epoch milliseconds. The remote protocol
expects payment dates in epoch nanoseconds; use ms_to_ns/ns_to_ms at the
boundary.

Usage:
    from hometrack.models import House, Payment

    house = House(id="h1", name="Lake house", total_cost=300000.0,
                  down_payment=60000.0, interest_rate=4.0, loan_term_years=30)
    payment = Payment(house_id="h1", amount=1200.0, note="June")
"""

from __future__ import annotations

import time
import uuid
from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any

NANOS_PER_MILLI = 1_000_000


def now_ms() -> int:
    """Current wall-clock time in epoch milliseconds."""
    return int(time.time() * 1000)


def ms_to_ns(value_ms: int) -> int:
    return int(value_ms) * NANOS_PER_MILLI


def ns_to_ms(value_ns: int) -> int:
    return int(value_ns) // NANOS_PER_MILLI


class SyncOpType(str, Enum):
    """Types of mutations that can wait in the sync queue."""

    ADD_HOUSE = "add_house"
    UPDATE_HOUSE = "update_house"
    DELETE_HOUSE = "delete_house"
    ADD_PAYMENT = "add_payment"
    EDIT_PAYMENT = "edit_payment"
    DELETE_PAYMENT = "delete_payment"
    UPDATE_PROFILE = "update_profile"


@dataclass
class House:
    """A tracked property (the top-level owned entity).

    Attributes:
        id: Caller-generated unique identifier.
        name: Display name.
        total_cost: Purchase price.
        down_payment: Amount paid up front.
        interest_rate: Flat interest in percent of the loan amount.
        loan_term_years: Loan term.
        created_at: Creation timestamp as issued by whoever created the house.
    """

    id: str
    name: str = ""
    total_cost: float = 0.0
    down_payment: float = 0.0
    interest_rate: float = 0.0
    loan_term_years: int = 0
    created_at: int = field(default_factory=now_ms)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> House:
        return cls(
            id=str(data["id"]),
            name=data.get("name", ""),
            total_cost=float(data.get("total_cost", 0.0)),
            down_payment=float(data.get("down_payment", 0.0)),
            interest_rate=float(data.get("interest_rate", 0.0)),
            loan_term_years=int(data.get("loan_term_years", 0)),
            created_at=int(data.get("created_at", 0)),
        )


@dataclass
class Payment:
    """A payment recorded against exactly one house.

    Payments carry their own stable id; edits and deletes target that id
    rather than a position in a sorted list.
    """

    house_id: str
    amount: float
    note: str = ""
    payment_method: str = ""
    date: int = field(default_factory=now_ms)
    id: str = field(default_factory=lambda: str(uuid.uuid4()))

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Payment:
        return cls(
            id=str(data["id"]),
            house_id=str(data["house_id"]),
            amount=float(data.get("amount", 0.0)),
            note=data.get("note", ""),
            payment_method=data.get("payment_method", ""),
            date=int(data.get("date", 0)),
        )


def payment_display_key(payment: Payment) -> tuple[int, str]:
    """Sort key for payment history: newest first, ties broken by id."""
    return (-payment.date, payment.id)


@dataclass
class UserProfile:
    """Per-identity profile record."""

    name: str

    def to_dict(self) -> dict[str, Any]:
        return {"name": self.name}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> UserProfile:
        return cls(name=data.get("name", ""))


@dataclass(frozen=True, order=True)
class AppVersion:
    """Application version, compared field by field."""

    major: int = 0
    minor: int = 0
    patch: int = 0
    build: int = 0

    def to_dict(self) -> dict[str, int]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> AppVersion:
        return cls(
            major=int(data.get("major", 0)),
            minor=int(data.get("minor", 0)),
            patch=int(data.get("patch", 0)),
            build=int(data.get("build", 0)),
        )

    def __str__(self) -> str:
        return f"{self.major}.{self.minor}.{self.patch}.{self.build}"


CLIENT_VERSION = AppVersion(major=0, minor=30, patch=0, build=0)


@dataclass
class SyncQueueItem:
    """A mutation waiting for remote confirmation.

    Attributes:
        id: Opaque unique token.
        type: Operation type.
        payload: Operation-specific data, JSON-compatible.
        enqueued_at: Enqueue time in epoch milliseconds.
        retry_count: Failed attempts so far. Never decreases.
    """

    id: str
    type: SyncOpType
    payload: dict[str, Any]
    enqueued_at: int
    retry_count: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type.value,
            "payload": self.payload,
            "enqueued_at": self.enqueued_at,
            "retry_count": self.retry_count,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> SyncQueueItem:
        return cls(
            id=data["id"],
            type=SyncOpType(data["type"]),
            payload=data.get("payload", {}),
            enqueued_at=int(data.get("enqueued_at", 0)),
            retry_count=int(data.get("retry_count", 0)),
        )


# Derived views


@dataclass
class HouseProgress:
    """Repayment progress for a single house."""

    total_paid: float
    remaining_balance: float
    progress_percentage: float
    interest_amount: float
    down_payment: float
    loan_term_years: int
    total_loan_amount: float

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> HouseProgress:
        return cls(
            total_paid=float(data["total_paid"]),
            remaining_balance=float(data["remaining_balance"]),
            progress_percentage=float(data["progress_percentage"]),
            interest_amount=float(data["interest_amount"]),
            down_payment=float(data["down_payment"]),
            loan_term_years=int(data["loan_term_years"]),
            total_loan_amount=float(data["total_loan_amount"]),
        )


@dataclass
class HouseWithProgress:
    """A house together with its repayment figures."""

    house: House
    total_paid: float
    remaining_balance: float
    progress_percentage: float
    interest_amount: float
    total_amount_to_pay: float

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["house"] = self.house.to_dict()
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> HouseWithProgress:
        return cls(
            house=House.from_dict(data["house"]),
            total_paid=float(data["total_paid"]),
            remaining_balance=float(data["remaining_balance"]),
            progress_percentage=float(data["progress_percentage"]),
            interest_amount=float(data["interest_amount"]),
            total_amount_to_pay=float(data["total_amount_to_pay"]),
        )


@dataclass
class DashboardSummary:
    """Aggregate figures across every house of the identity."""

    total_houses: int = 0
    total_cost: float = 0.0
    total_paid: float = 0.0
    remaining_balance: float = 0.0
    total_interest: float = 0.0
    overall_progress: float = 0.0
    total_payments: int = 0

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> DashboardSummary:
        return cls(
            total_houses=int(data.get("total_houses", 0)),
            total_cost=float(data.get("total_cost", 0.0)),
            total_paid=float(data.get("total_paid", 0.0)),
            remaining_balance=float(data.get("remaining_balance", 0.0)),
            total_interest=float(data.get("total_interest", 0.0)),
            overall_progress=float(data.get("overall_progress", 0.0)),
            total_payments=int(data.get("total_payments", 0)),
        )


@dataclass
class BootstrapSnapshot:
    """Everything the dashboard needs, fetched in one remote call."""

    profile: UserProfile | None
    houses_with_progress: list[HouseWithProgress]
    dashboard_summary: DashboardSummary

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> BootstrapSnapshot:
        profile = data.get("profile")
        return cls(
            profile=UserProfile.from_dict(profile) if profile else None,
            houses_with_progress=[
                HouseWithProgress.from_dict(item) for item in data.get("houses_with_progress", [])
            ],
            dashboard_summary=DashboardSummary.from_dict(data.get("dashboard_summary", {})),
        )
