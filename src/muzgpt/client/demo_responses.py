"""Canned replies used when no generation credential is configured."""

from muzgpt.models.mode import Mode

SIMULATION_SUFFIX = (
    "\n\n---\n[NEURAL STATUS: SIMULATION MODE // "
    "Add OPENAI_API_KEY to .env for full intelligence]"
)

DEMO_RESPONSES: dict[Mode, list[str]] = {
    Mode.GENERAL: [
        "MUZGPT Neural Sync: I'm currently running on local backup compute. My full "
        "intelligence requires an active OPENAI_API_KEY in your .env file. However, I can "
        "still guide you through my features!",
        "Searching local clusters... It seems the primary neural link is offline. To enable "
        "my real-time adaptive thinking, please add your API key to .env. What can I help "
        "you with in the meantime?",
        "System Update: I've detected a placeholder API key. I'm MUZGPT, and once you "
        "connect my full brain, I'll be able to solve complex problems, write code, and "
        "more. Try asking about my 'Student' or 'Startup' modes!",
    ],
    Mode.STUDENT: [
        "Student Mode (Simulated): Quantum mechanics is easier than it looks! I can help you "
        "break down any subject. Note: To get real-time explanations, please activate my "
        "neural link by adding your API key to the environment.",
        "Hey! Learning is a journey. I'm currently in 'Lite' mode. Once my API key is linked, "
        "I can generate full study plans and memory hacks tailored specifically to you.",
    ],
    Mode.GAME: [
        "QUEST ACCEPTED! You just earned +100 XP for exploring the interface. To turn your "
        "real tasks into level-ups, I need my full neural link (API KEY) active. Ready to "
        "quest?",
        "HYPE! You're leveling up fast. I'm MUZGPT (Game Mode). I turn every chat into an "
        "adventure. Add the API key to .env to unlock my full quest engine!",
    ],
    Mode.STARTUP: [
        "Founder Insights: Every great MVP starts with a solid foundation. You've built the "
        "UI, now let's activate the brain. Add your OPENAI_API_KEY to see how I can analyze "
        "your market fit in real-time.",
        "Strategic Simulation: I'm ready to brainstorm your next big thing. While we wait for "
        "the neural link (API Key) to stabilize, what industry are you disrupting today?",
    ],
}
