"""Who is looking at a provider sheet, resolved once per render.

A ViewContext is a tagged variant: clinic staff (by role, optionally in the
condensed layout) or a provider using self-service (level 1 or 2).
"""

from __future__ import annotations

from dataclasses import dataclass

from .constants import Role


@dataclass(frozen=True)
class StaffView:
    """Clinic staff opening a provider's sheet from the clinic workspace."""

    role: Role
    condensed: bool = False


@dataclass(frozen=True)
class ProviderView:
    """A provider viewing their own sheet.

    Level 1 sees the scheduling columns; level 2 sees everything read-only.
    """

    level: int = 1

    def __post_init__(self) -> None:
        if self.level not in (1, 2):
            raise ValueError(f"provider view level must be 1 or 2, got {self.level}")


ViewContext = StaffView | ProviderView


def resolve_view_context(role: Role | str, condensed: bool = False, provider_level: int = 1) -> ViewContext:
    """Build the view context for a signed-in user.

    Args:
        role: Role string or enum from the auth layer
        condensed: Staff preference for the condensed column layout
        provider_level: Self-service tier, used only for the provider role
    """
    role = Role(role)
    if role is Role.PROVIDER:
        return ProviderView(level=provider_level)
    return StaffView(role=role, condensed=condensed)
