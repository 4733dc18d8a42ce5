from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class UserRef:
    id: int
    name: str | None
    phone: str
    username: str | None = None
    language: str | None = None
    plan: str = "free"
    plan_active: bool = False


@dataclass(frozen=True)
class CategoryRef:
    id: int
    name: str
    kind: str


@dataclass(frozen=True)
class CardRef:
    id: int
    name: str
    brand: str | None = None
