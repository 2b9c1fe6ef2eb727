"""Per-mode presentation and sizing defaults shared by parsing and messaging."""

from levelwatch.schemas import Mode

MODE_INFO = {
    Mode.GREEN: {
        "emoji": "🟢",
        "cap_pct": 25,
        "cap": "up to 25%",
        "guidance": "Favorable conditions for swing entries. Consider adding on dips to key levels.",
        "color": 0x22C55E,
        "entry_quality": 4,
    },
    Mode.YELLOW: {
        "emoji": "🟡",
        "cap_pct": 15,
        "cap": "15% or less",
        "guidance": "Proceed with caution. Tighter stops, smaller positions. Wait for clearer signals.",
        "color": 0xEAB308,
        "entry_quality": 3,
    },
    Mode.ORANGE: {
        "emoji": "🟠",
        "cap_pct": 10,
        "cap": "10% or less",
        "guidance": "Elevated caution. Respect key levels. Size positions conservatively.",
        "color": 0xF97316,
        "entry_quality": 2,
    },
    Mode.RED: {
        "emoji": "🔴",
        "cap_pct": 5,
        "cap": "5% or less",
        "guidance": "Defensive stance. Protect capital. Bounces are exits.",
        "color": 0xEF4444,
        "entry_quality": 1,
    },
}

# Words that identify a regime, checked case-insensitively
MODE_VOCABULARY = {
    Mode.GREEN: ("green", "calm"),
    Mode.YELLOW: ("yellow", "caution", "cautious"),
    Mode.ORANGE: ("orange", "elevated risk", "elevated-risk"),
    Mode.RED: ("red", "defensive"),
}

EMOJI_MODES = {info["emoji"]: mode for mode, info in MODE_INFO.items()}


def mode_info(mode) -> dict:
    return MODE_INFO.get(Mode(mode), MODE_INFO[Mode.RED])
