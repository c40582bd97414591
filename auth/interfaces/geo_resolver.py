"""Geo resolver interface."""

from __future__ import annotations

from typing import Protocol

from auth.models import GeoLocation


class GeoResolver(Protocol):
    def resolve(self, ip: str) -> GeoLocation:
        ...
