"""Entry point: python -m jot <command>

- add <message> [--context NAME] [--ttl DAYS] [--tag TAG]...
- list [CONTEXT|*]     Jots in CONTEXT (default: current context, "*" = all)
- search <query>       Full-text search across all contexts
- contexts             List contexts, most recently modified first
- cleanup              Delete expired jots
- expiring [DAYS]      Jots expiring within DAYS (default from config)
- export [CONTEXT]     Markdown digest of a context
- version
"""

from __future__ import annotations

import logging
import sys

from jot import __version__
from jot.config import JotConfig, load_config
from jot.errors import ContextNotFoundError, JotError

USAGE = """\
Usage: python -m jot <command> [args]
  add <message> [--context NAME] [--ttl DAYS] [--tag TAG]...
  list [CONTEXT|*]
  search <query>
  contexts
  cleanup
  expiring [DAYS]
  export [CONTEXT]
  version"""


def _setup_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.WARNING),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )


def _build_service(config: JotConfig):
    from jot.detect import ContextDetector
    from jot.service import JotService
    from jot.storage import Database, JotRepository

    db = Database(config.db_path)
    repository = JotRepository(db)
    detector = ContextDetector(default_name=config.default_context)
    return JotService(repository, detector, config)


def _context_ref(value: str) -> int | str:
    return int(value) if value.isdigit() else value


def _format_jot(jot, context_name: str | None = None) -> str:
    meta = []
    if context_name:
        meta.append(f"ctx:{context_name}")
    if jot.tags:
        meta.append(f"tags:{','.join(jot.tags)}")
    meta.append(f"created:{jot.created_at.date().isoformat()}")
    if jot.expires_at is None:
        meta.append("permanent")
    return f"[{jot.id}] {jot.message}\n    {' | '.join(meta)}"


def _parse_add(args: list[str]) -> dict:
    opts: dict = {"tags": []}
    words: list[str] = []
    it = iter(args)
    for arg in it:
        if arg in ("--context", "--ttl", "--tag"):
            value = next(it, None)
            if value is None:
                raise JotError(f"{arg} requires a value")
            if arg == "--context":
                opts["context_name"] = value
            elif arg == "--ttl":
                try:
                    opts["ttl_days"] = float(value)
                except ValueError:
                    raise JotError(f"--ttl must be a number, got {value!r}") from None
            else:
                opts["tags"].append(value)
        else:
            words.append(arg)
    opts["message"] = " ".join(words)
    return opts


def run(argv: list[str], config: JotConfig | None = None) -> int:
    """Dispatch one command. Returns the process exit code."""
    cmd, args = (argv[0], argv[1:]) if argv else ("list", [])

    if cmd in ("version", "--version", "-v"):
        print(__version__)
        return 0
    if cmd in ("help", "--help", "-h"):
        print(USAGE)
        return 0

    config = config or load_config()
    service = _build_service(config)
    try:
        return _dispatch(service, cmd, args)
    finally:
        service.repository.db.close()


def _dispatch(service, cmd: str, args: list[str]) -> int:
    from jot.export import export_context
    from jot.types import CreateJotOptions, SearchOptions

    def name_of(context_id: int) -> str | None:
        context = service.get_context(context_id)
        return context.name if context else None

    if cmd == "add":
        jot = service.create_jot(CreateJotOptions(**_parse_add(args)))
        expiry = jot.expires_at.date().isoformat() if jot.expires_at else "never"
        print(f'Jotted to context "{name_of(jot.context_id)}" (id={jot.id}, expires: {expiry})')
    elif cmd == "list":
        if args and args[0] in ("*", "all"):
            jots = service.search_jots(SearchOptions())
            print("\n".join(_format_jot(j, name_of(j.context_id)) for j in jots) or "No jots.")
        elif args:
            jots = service.get_context_jots(_context_ref(args[0]))
            print("\n".join(_format_jot(j) for j in jots) or "No jots.")
        else:
            current = service.detect_current_context()
            try:
                jots = service.get_context_jots(current)
            except ContextNotFoundError:
                # Nothing jotted here yet: show every context instead.
                print(f"No jots in current context ({current})")
                jots = service.search_jots(SearchOptions())
                print("\n".join(_format_jot(j, name_of(j.context_id)) for j in jots) or "No jots.")
            else:
                print("\n".join(_format_jot(j) for j in jots) or "No jots.")
    elif cmd == "search":
        jots = service.search_jots(SearchOptions(query=" ".join(args) or None))
        print("\n".join(_format_jot(j, name_of(j.context_id)) for j in jots) or "No jots found.")
    elif cmd == "contexts":
        current = service.detect_current_context()
        for context in service.list_contexts():
            marker = " *" if context.name == current else ""
            print(f"{context.name}{marker} ({context.jot_count} jots)")
    elif cmd == "cleanup":
        count = service.cleanup_expired()
        print(f"Cleaned up {count} expired jot{'s' if count != 1 else ''}")
    elif cmd == "expiring":
        days = float(args[0]) if args else None
        jots = service.get_expiring_soon(days)
        print("\n".join(_format_jot(j, name_of(j.context_id)) for j in jots) or "No jots.")
    elif cmd == "export":
        target = args[0] if args else service.detect_current_context()
        print(export_context(service, _context_ref(target)))
    else:
        print(USAGE)
        return 1
    return 0


def main(argv: list[str] | None = None) -> None:
    try:
        # TOMLDecodeError and bad numeric env values are both ValueErrors.
        config = load_config()
        _setup_logging(config.log_level)
        sys.exit(run(sys.argv[1:] if argv is None else argv, config))
    except (JotError, ValueError) as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
