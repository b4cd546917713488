from dataclasses import dataclass
from typing import List, Optional


@dataclass
class CommandMetadata:
    """Metadata for a single text command."""
    name: str
    aliases: List[str]
    description: str
    category: str
    usage: str
    help_text: str


COMMAND_REGISTRY: List[CommandMetadata] = [
    # TURNS
    CommandMetadata(
        name="NEXT",
        aliases=["N", "ADVANCE", "."],
        description="Advance one week.",
        category="TURNS",
        usage="NEXT",
        help_text="Run a single turn: the economy, politics, crises, opposition and diplomacy all update."
    ),
    CommandMetadata(
        name="RUN",
        aliases=["SKIP"],
        description="Advance several weeks.",
        category="TURNS",
        usage="RUN <WEEKS>",
        help_text="Run turns one after another. Stops early if the game ends."
    ),
    CommandMetadata(
        name="PLAY",
        aliases=["START", "GO"],
        description="Let weeks pass on their own.",
        category="TURNS",
        usage="PLAY",
        help_text="Continuous play: one week passes every SPEED milliseconds until you PAUSE."
    ),
    CommandMetadata(
        name="PAUSE",
        aliases=["HOLD"],
        description="Pause continuous play.",
        category="TURNS",
        usage="PAUSE",
        help_text="Stop the clock. Commands still work while paused."
    ),
    CommandMetadata(
        name="RESUME",
        aliases=["CONTINUE"],
        description="Resume continuous play.",
        category="TURNS",
        usage="RESUME",
        help_text="Restart the clock without replaying the weeks spent paused."
    ),
    CommandMetadata(
        name="SPEED",
        aliases=["TEMPO"],
        description="Show or set the length of a week in continuous play.",
        category="TURNS",
        usage="SPEED [MILLISECONDS]",
        help_text="Milliseconds per week, between 100 and 5000."
    ),
    CommandMetadata(
        name="STATUS",
        aliases=["S"],
        description="Show the national dashboard.",
        category="TURNS",
        usage="STATUS",
        help_text="Economy, approval, coalition, crises and international standing at a glance."
    ),
    CommandMetadata(
        name="NEWS",
        aliases=["EVENTS"],
        description="Show recent events.",
        category="TURNS",
        usage="NEWS",
        help_text="The last ten things that happened."
    ),

    # POLICY
    CommandMetadata(
        name="POLICY",
        aliases=["P", "ENACT"],
        description="Implement an economic policy.",
        category="POLICY",
        usage="POLICY <TYPE> [MAGNITUDE] [WEEKS]",
        help_text="Start a policy programme such as fiscal_stimulus or interest_rate_change. POLICY LIST shows every type."
    ),
    CommandMetadata(
        name="PROGRAMMES",
        aliases=["PROGRAMS", "PIPELINE"],
        description="Show policies still being implemented.",
        category="POLICY",
        usage="PROGRAMMES",
        help_text="Progress, phase, weeks remaining and opposition resistance of each programme, plus spare capacity."
    ),
    CommandMetadata(
        name="FORECAST",
        aliases=[],
        description="Project the economy forward.",
        category="POLICY",
        usage="FORECAST [WEEKS]",
        help_text="A mean-reverting projection of growth, unemployment and inflation."
    ),

    # DECISIONS
    CommandMetadata(
        name="DECISIONS",
        aliases=["D", "PENDING"],
        description="List everything awaiting your answer.",
        category="DECISIONS",
        usage="DECISIONS",
        help_text="Political events, active crises with their responses, and pending debates."
    ),
    CommandMetadata(
        name="RESPOND",
        aliases=["R", "ANSWER"],
        description="Answer an event, crisis or debate.",
        category="DECISIONS",
        usage="RESPOND EVENT <ID> <OPTION> | RESPOND CRISIS <ID> <RESPONSE> [RESOURCES] | RESPOND DEBATE <ID> <TYPE>",
        help_text="Debate response types: strong_defense, compromise, deflect, weak_response."
    ),

    # DIPLOMACY
    CommandMetadata(
        name="TRADE",
        aliases=["NEGOTIATE"],
        description="Negotiate a trade agreement.",
        category="DIPLOMACY",
        usage="TRADE <COUNTRY CODE>",
        help_text="Success depends on the relationship, mutual benefit and your approval."
    ),
    CommandMetadata(
        name="RELATIONS",
        aliases=["WORLD"],
        description="Show relations with partner countries.",
        category="DIPLOMACY",
        usage="RELATIONS",
        help_text="Relationship scores, agreements, alliances and sanctions."
    ),

    # SYSTEM
    CommandMetadata(
        name="SAVE",
        aliases=[],
        description="Save the game.",
        category="SYSTEM",
        usage="SAVE [NAME]",
        help_text="Write a named save. Up to ten manual saves are kept."
    ),
    CommandMetadata(
        name="LOAD",
        aliases=[],
        description="Load a saved game.",
        category="SYSTEM",
        usage="LOAD <ID>",
        help_text="Replace the current session with a saved one. Use SAVES to list ids."
    ),
    CommandMetadata(
        name="SAVES",
        aliases=["LIST"],
        description="List saved games.",
        category="SYSTEM",
        usage="SAVES",
        help_text="Show every save, newest first."
    ),
    CommandMetadata(
        name="HELP",
        aliases=["?", "H"],
        description="Show help.",
        category="SYSTEM",
        usage="HELP [CATEGORY]",
        help_text="List commands, or the commands in one category."
    ),
    CommandMetadata(
        name="QUIT",
        aliases=["EXIT", "Q"],
        description="Leave the game.",
        category="SYSTEM",
        usage="QUIT",
        help_text="End the session. Unsaved progress since the last autosave is lost."
    ),
]


def get_command_by_name(name: str) -> Optional[CommandMetadata]:
    """Find a command by name or alias (case-insensitive)."""
    name = name.upper()
    for cmd in COMMAND_REGISTRY:
        if cmd.name == name or name in cmd.aliases:
            return cmd
    return None


def get_commands_by_category(category: str) -> List[CommandMetadata]:
    """Get all commands in a specific category."""
    category = category.upper()
    return [cmd for cmd in COMMAND_REGISTRY if cmd.category == category]


def get_all_categories() -> List[str]:
    """Get a list of all unique command categories."""
    return sorted({cmd.category for cmd in COMMAND_REGISTRY})
