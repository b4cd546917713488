"""Text command loop for Statecraft."""

import os
import atexit

# Cross-platform readline support for command history
READLINE_AVAILABLE = False
try:
    import readline
    READLINE_AVAILABLE = True
except ImportError:
    # Windows fallback - try pyreadline3
    try:
        import pyreadline3 as readline
        READLINE_AVAILABLE = True
    except ImportError:
        pass

from core.command_registry import get_command_by_name, get_commands_by_category, get_all_categories
from core.event_system import EventType, GameEvent
from core.logger import setup_logger
from core.settings import SettingsManager, Difficulty, DifficultySettings
from engine import GameSession
from systems.diplomacy import COUNTRIES
from systems.economy import POLICY_EFFECTS
from systems.persistence import SaveManager

# History file path (in user's home directory)
HISTORY_FILE = os.path.expanduser("~/.statecraft_history")
MAX_HISTORY_LENGTH = 100


def _setup_readline():
    """Configure readline for command history and arrow key navigation."""
    if not READLINE_AVAILABLE:
        return

    readline.set_history_length(MAX_HISTORY_LENGTH)
    try:
        if os.path.exists(HISTORY_FILE):
            readline.read_history_file(HISTORY_FILE)
    except (IOError, OSError):
        pass  # History file doesn't exist or is unreadable

    atexit.register(_save_history)


def _save_history():
    """Save command history to file."""
    if not READLINE_AVAILABLE:
        return

    try:
        readline.write_history_file(HISTORY_FILE)
    except (IOError, OSError):
        pass  # Can't write history file


def _select_difficulty():
    """Display difficulty selection menu and return chosen difficulty."""
    print("\n" + "=" * 50)
    print("   STATECRAFT: A GOVERNMENT SIMULATION")
    print("=" * 50)
    print("\nSelect Difficulty:")
    print()

    for i, diff in enumerate(Difficulty, 1):
        settings = DifficultySettings.get_all(diff)
        print(f"  [{i}] {diff.value}")
        print(f"      {settings['description']}")
        print()

    while True:
        try:
            choice = input("Enter choice (1-3) [2]: ").strip()
            if not choice:
                return Difficulty.NORMAL
            choice = int(choice)
            if 1 <= choice <= 3:
                return list(Difficulty)[choice - 1]
            print("Invalid choice. Enter 1, 2, or 3.")
        except ValueError:
            print("Invalid input. Enter a number.")
        except EOFError:
            return Difficulty.NORMAL


class LoopContext:
    """What a command needs: the live session and where saves go."""

    def __init__(self, session: GameSession, save_manager: SaveManager, output=print):
        self.session = session
        self.save_manager = save_manager
        self.output = output
        self._unsubscribers = []
        self.attach_reporter()

    def attach_reporter(self):
        bus = self.session.event_bus
        for event_type in REPORTED_EVENTS:
            self._unsubscribers.append(bus.subscribe(event_type, self._report))

    def detach_reporter(self):
        while self._unsubscribers:
            self._unsubscribers.pop()()

    def replace_session(self, session: GameSession):
        self.detach_reporter()
        self.session.dispose()
        self.session = session
        self.attach_reporter()

    def _report(self, event: GameEvent):
        line = describe_event(event)
        if line:
            self.output(line)


REPORTED_EVENTS = (
    EventType.ECONOMIC_EVENT,
    EventType.ECONOMIC_CYCLE_CHANGE,
    EventType.POLITICAL_EVENT_TRIGGERED,
    EventType.ELECTION,
    EventType.VOTE_RESULT,
    EventType.CRISIS_GENERATED,
    EventType.CRISIS_ESCALATED,
    EventType.CRISIS_RESOLVED,
    EventType.OPPOSITION_ACTION,
    EventType.DEBATE_INITIATED,
    EventType.DEBATE_CONCLUDED,
    EventType.INTERNATIONAL_CRISIS,
    EventType.TRADE_AGREEMENT,
    EventType.POLICY_PHASE_CHANGE,
    EventType.POLICY_OPPOSITION_CHALLENGE,
    EventType.POLICY_COMPLETED,
    EventType.ACHIEVEMENT_UNLOCKED,
    EventType.GAME_END,
)


def describe_event(event: GameEvent):
    """One line of news for an event, or None if it is not worth printing."""
    p = event.payload
    kind = event.type
    if kind == EventType.ECONOMIC_EVENT:
        return f"[ECONOMY] {p.get('message')}"
    if kind == EventType.ECONOMIC_CYCLE_CHANGE:
        return f"[ECONOMY] Business cycle: {p.get('from')} -> {p.get('to')}"
    if kind == EventType.POLITICAL_EVENT_TRIGGERED:
        return f"[POLITICS] {p['event']['title']} (decision required: {p['event']['id']})"
    if kind == EventType.ELECTION:
        return f"[ELECTION] Result: {p['result'].replace('_', ' ')} at {p['approval']:.1f}% approval"
    if kind == EventType.VOTE_RESULT:
        return f"[PARLIAMENT] {p['title']}: {'passed' if p['passed'] else 'failed'}"
    if kind == EventType.CRISIS_GENERATED:
        return f"[CRISIS] {p['crisis']['title']} ({p['crisis']['id']})"
    if kind == EventType.CRISIS_ESCALATED:
        return f"[CRISIS] Escalation: {p['escalated_crisis']['title']}"
    if kind == EventType.CRISIS_RESOLVED:
        return f"[CRISIS] Resolved: {p['crisis']['title']}"
    if kind == EventType.OPPOSITION_ACTION:
        action = p["action"]
        return f"[OPPOSITION] {action.get('title') or action.get('message')}"
    if kind == EventType.DEBATE_INITIATED:
        return f"[DEBATE] Debate on {p['debate']['topic']} called ({p['debate']['id']})"
    if kind == EventType.DEBATE_CONCLUDED:
        return f"[DEBATE] {p['debate']['topic']}: {p['outcome']['outcome'].replace('_', ' ')}"
    if kind == EventType.INTERNATIONAL_CRISIS:
        return f"[WORLD] {p['crisis']['description']}"
    if kind == EventType.TRADE_AGREEMENT:
        verdict = "signed" if p.get("success") else "rejected"
        return f"[WORLD] Trade agreement with {p['country']} {verdict}"
    if kind == EventType.POLICY_PHASE_CHANGE:
        return f"[POLICY] {p['type']}: {p['to']}"
    if kind == EventType.POLICY_OPPOSITION_CHALLENGE:
        return f"[POLICY] {p['challenge']['description']}"
    if kind == EventType.POLICY_COMPLETED:
        return f"[POLICY] {p['implementation']['type']} fully implemented"
    if kind == EventType.ACHIEVEMENT_UNLOCKED:
        return f"*** ACHIEVEMENT: {p['achievement']['title']} ***"
    if kind == EventType.GAME_END:
        condition = p["end_condition"]
        return f"\n=== {condition['title'].upper()} ===\n{condition['description']}"
    return None


def _show_help(context, topic=None):
    """Display help information from command registry."""
    out = context.output
    if topic:
        commands = get_commands_by_category(topic)
        if not commands:
            out(f"Unknown help topic: {topic}")
            out("Available topics: " + ", ".join(get_all_categories()))
            return
        out(f"\n=== {topic.upper()} COMMANDS ===\n")
        for cmd in commands:
            out(f"{cmd.name:12} - {cmd.description}")
            if cmd.aliases:
                out(f"{'':12}   Aliases: {', '.join(cmd.aliases)}")
            out(f"{'':12}   Usage: {cmd.usage}")
        return

    out("\n=== STATECRAFT: COMMAND REFERENCE ===\n")
    for category in get_all_categories():
        names = [cmd.name for cmd in get_commands_by_category(category)]
        out(f"  {category:10} - {', '.join(names)}")
    out("\nType HELP <CATEGORY> for detailed command information.")


def _render_status(context):
    s = context.session.summary()
    e = s["economy"]
    out = context.output
    out(f"\n[WEEK {s['week']} / YEAR {s['year']}] {s['date']} | cycle: {s['cycle']}")
    out(f"  GDP growth {e['gdp_growth']:+.2f}% | unemployment {e['unemployment']:.1f}% | "
        f"inflation {e['inflation']:.1f}% | rate {e['interest_rate']:.2f}%")
    out(f"  confidence {e['confidence']:.0f} | debt {e['debt_ratio']:.1f}% of GDP")
    out(f"  approval {s['approval']:.1f}% | coalition {s['coalition_support']:.1f}% | "
        f"capital {s['political_capital']:.0f}")
    out(f"  crises {s['active_crises']} | programmes {s['policies_in_progress']} | "
        f"opposition: {s['opposition_strategy']} | standing: {s['standing']}")


def _render_decisions(context):
    out = context.output
    pending = context.session.pending_decisions()
    if not any(pending.values()):
        out("Nothing awaits your decision.")
        return
    for event in pending["political_events"]:
        out(f"EVENT {event['id']}: {event['title']} (options: {', '.join(event['options'])})")
    for crisis in pending["crises"]:
        out(f"CRISIS {crisis['id']}: {crisis['title']} (severity {crisis['severity']:.0f})")
        for response in crisis["responses"]:
            out(f"    {response['id']}: {response['name']} (cost {response['cost']})")
    for debate in pending["debates"]:
        out(f"DEBATE {debate['id']}: {debate['topic']} ({debate['urgency']})")


def _render_programmes(context):
    out = context.output
    session = context.session
    engine = session.policy_implementation
    for programme in engine.active_summary(session.game_state):
        out(f"{programme['id']}: {programme['type']} {programme['progress']:.0f}% ({programme['phase']}), "
            f"{programme['weeks_remaining']} weeks left, resistance {programme['resistance']:.0f}, "
            f"challenges {programme['challenges']}")
    capacity = engine.capacity_status(session.game_state)
    out(f"Capacity: {capacity['used']}/{capacity['total']} in use")


def _parse_float(text, default=None):
    try:
        return float(text)
    except (TypeError, ValueError):
        return default


def execute_command(context, tokens):
    """Execute one tokenised command. Returns False when the loop should exit."""
    if not tokens:
        return True
    meta = get_command_by_name(tokens[0])
    if meta is None:
        context.output("Unknown command. Type HELP for a list of commands.")
        return True

    session = context.session
    out = context.output
    args = tokens[1:]
    action = meta.name

    if action == "QUIT":
        return False
    elif action == "HELP":
        _show_help(context, args[0] if args else None)
    elif action == "NEXT":
        if not session.advance_turn():
            out("The game is over." if session.game_over else "Turn not advanced.")
    elif action == "RUN":
        weeks = int(_parse_float(args[0], 1)) if args else 1
        ran = session.advance_turns(weeks)
        out(f"{ran} week(s) simulated.")
    elif action == "PLAY":
        if session.play():
            out(f"Clock running: one week every {session.scheduler.speed_ms} ms. PAUSE to stop.")
        else:
            out("Already running." if session.scheduler.running else "The clock cannot be started.")
    elif action == "PAUSE":
        out("Paused." if session.pause() else "The clock is not running.")
    elif action == "RESUME":
        out("Resumed." if session.resume() else "The clock is not paused.")
    elif action == "SPEED":
        if args:
            requested = _parse_float(args[0])
            if requested is None:
                out("Usage: " + meta.usage)
                return True
            session.set_speed(requested)
        out(f"One week every {session.scheduler.speed_ms} ms.")
    elif action == "STATUS":
        _render_status(context)
    elif action == "NEWS":
        for entry in session.game_state.events.recent:
            out(f"  W{entry.get('week')}/Y{entry.get('year')} {entry.get('title')}")
    elif action == "POLICY":
        if not args or args[0].lower() == "list":
            out("Policies: " + ", ".join(sorted(POLICY_EFFECTS)))
        else:
            policy_type = args[0].lower()
            if policy_type not in POLICY_EFFECTS:
                out(f"Unknown policy '{policy_type}'. POLICY LIST shows every type.")
            else:
                magnitude = _parse_float(args[1]) if len(args) > 1 else None
                weeks = int(_parse_float(args[2], 0)) if len(args) > 2 else None
                policy = session.implement_policy(policy_type, magnitude, weeks or None)
                if policy is not None:
                    out(f"Policy {policy.type} in force for {policy.duration} weeks.")
                else:
                    rejection = session.policy_implementation.last_rejection
                    out(f"Policy rejected: {rejection['message']}" if rejection
                        else "Policy could not be applied.")
    elif action == "PROGRAMMES":
        _render_programmes(context)
    elif action == "FORECAST":
        weeks = int(_parse_float(args[0], 12)) if args else 12
        projection = session.economy.forecast(session.game_state, weeks)
        out(f"In {weeks} weeks: growth {projection['gdp_growth'][-1]:+.2f}%, "
            f"unemployment {projection['unemployment'][-1]:.1f}%, inflation {projection['inflation'][-1]:.1f}%")
    elif action == "DECISIONS":
        _render_decisions(context)
    elif action == "RESPOND":
        _respond(context, args)
    elif action == "TRADE":
        if not args:
            out("Usage: " + meta.usage)
        elif args[0].upper() not in COUNTRIES:
            out("Known countries: " + ", ".join(COUNTRIES))
        else:
            signed = session.negotiate_trade(args[0].upper())
            out("Agreement signed." if signed else "Negotiations failed.")
    elif action == "RELATIONS":
        overview = session.diplomacy.overview(session.game_state)
        for code, info in sorted(overview["relations"].items()):
            out(f"  {code} {info['name']:15} {info['relation']:5.1f}")
        out(f"  standing: {overview['standing']} | agreements: {len(overview['trade_agreements'])}")
    elif action == "SAVE":
        save_id = session.save(" ".join(args) if args else None)
        out(f"Game saved ({save_id})." if save_id else "Save failed.")
    elif action == "SAVES":
        for entry in context.save_manager.list_saves():
            out(f"  {entry['id']:40} {entry['name']} ({entry['timestamp']})")
    elif action == "LOAD":
        if not args:
            out("Usage: " + meta.usage)
        else:
            loaded = GameSession.load(context.save_manager, args[0], settings=session.settings)
            if loaded is None:
                out("Could not load that save.")
            else:
                context.replace_session(loaded)
                out("*** GAME LOADED ***")
    return True


def _respond(context, args):
    out = context.output
    session = context.session
    if len(args) < 3:
        out("Usage: " + get_command_by_name("RESPOND").usage)
        return
    kind, target, choice = args[0].lower(), args[1], args[2].lower()
    if kind == "event":
        ok = session.respond_to_event(target, choice)
    elif kind == "crisis":
        resources = _parse_float(args[3], 1.0) if len(args) > 3 else 1.0
        ok = session.respond_to_crisis(target, choice, resources)
    elif kind == "debate":
        ok = session.respond_to_debate(target, choice)
    else:
        out("Respond to EVENT, CRISIS or DEBATE.")
        return
    out("Done." if ok else f"No such {kind} or option.")


def main():
    """Main game loop - can be called from launcher or run directly."""
    _setup_readline()
    setup_logger()

    settings = SettingsManager()
    difficulty = _select_difficulty()
    save_manager = SaveManager(save_dir=settings.get("save_dir", "data/saves"))

    print(f"\nStarting on {difficulty.value} difficulty. Type HELP for commands.")
    session = GameSession(difficulty=difficulty, settings=settings, save_manager=save_manager)
    context = LoopContext(session, save_manager)
    _render_status(context)

    while True:
        try:
            line = input("\n> ").strip()
        except EOFError:
            break
        if not execute_command(context, line.split()):
            break

    context.detach_reporter()
    context.session.dispose()
    print("Goodbye.")


if __name__ == "__main__":
    main()
