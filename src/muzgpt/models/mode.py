"""Chat modes and subscription tiers."""

from enum import StrEnum

from pydantic import BaseModel


class Tier(StrEnum):
    """Subscription tiers."""

    FREE = "free"
    PREMIUM = "premium"


class Mode(StrEnum):
    """Selectable chat personas."""

    GENERAL = "general"
    STUDENT = "student"
    GAME = "game"
    STARTUP = "startup"


class ModeConfig(BaseModel):
    """Display metadata and access rules for a mode."""

    label: str
    icon: str
    description: str
    tier: Tier
    system_instruction: str

    def available_to(self, tier: Tier) -> bool:
        return self.tier == Tier.FREE or tier == Tier.PREMIUM


MODE_CONFIG: dict[Mode, ModeConfig] = {
    Mode.GENERAL: ModeConfig(
        label="General",
        icon="⚡",
        description="All-purpose intelligence",
        tier=Tier.FREE,
        system_instruction=(
            "You are MUZGPT. Tagline: Smarter. Cooler. Built for the Next Generation.\n"
            "Behavior: Concise by default, natural human tone, no robotic language.\n"
            "Style: Friendly, confident, modern. Use emojis sparingly. "
            "Use clear bullet points and structure."
        ),
    ),
    Mode.STUDENT: ModeConfig(
        label="Student",
        icon="🎓",
        description="Learn faster, understand better",
        tier=Tier.FREE,
        system_instruction=(
            "You are MUZGPT in STUDENT MODE.\n"
            "Target: Students (13-18).\n"
            "Approach: Explain concepts step-by-step. Use simple analogies. "
            "Focus on deep understanding over memorization.\n"
            "Give study tips and memory hacks. Encourage the student and never judge."
        ),
    ),
    Mode.GAME: ModeConfig(
        label="Game",
        icon="🎮",
        description="Turn life into a level-up",
        tier=Tier.PREMIUM,
        system_instruction=(
            "You are MUZGPT in GAME MODE.\n"
            "Tone: Hype, high energy, motivating.\n"
            "Logic: Treat every conversation as a quest. Turn user tasks into challenges.\n"
            "Always award virtual 'XP' (mentally) and offer encouragement for every step "
            "of progress.\n"
            "Make learning feel like a level-up. Give 'achievements' for good questions."
        ),
    ),
    Mode.STARTUP: ModeConfig(
        label="Startup",
        icon="🚀",
        description="Build the next big thing",
        tier=Tier.PREMIUM,
        system_instruction=(
            "You are MUZGPT in STARTUP MODE.\n"
            "Tone: Strategic, pragmatic, visionary but realistic.\n"
            "Expertise: Branding, MVPs, product strategy, market fit, execution plans.\n"
            "Role: Startup Mentor. Focus on clarity and immediate action. "
            "Avoid empty hype. Think like a founder."
        ),
    ),
}


def mode_config(mode: Mode) -> ModeConfig:
    return MODE_CONFIG[Mode(mode)]
