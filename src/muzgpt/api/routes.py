"""REST API routes for service metadata."""

from fastapi import APIRouter

from muzgpt.client.usage_gate import DAILY_LIMITS
from muzgpt.models.mode import MODE_CONFIG

router = APIRouter(prefix="/api")


@router.get("/modes")
async def list_modes() -> list[dict]:
    """Mode catalogue with labels and tier requirements."""
    return [
        {
            "mode": mode.value,
            "label": config.label,
            "icon": config.icon,
            "description": config.description,
            "tier": config.tier.value,
        }
        for mode, config in MODE_CONFIG.items()
    ]


@router.get("/limits")
async def daily_limits() -> dict:
    """Daily message limits per tier."""
    return {tier.value: limit for tier, limit in DAILY_LIMITS.items()}


@router.get("/health")
async def health_check() -> dict:
    """Health check endpoint."""
    return {"status": "ok"}
