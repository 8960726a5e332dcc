"""Command line entry point for the Notewise AI engine."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import os
import sys
from dataclasses import asdict
from pathlib import Path
from typing import Any, Callable, Dict, Mapping, Optional, Sequence, TextIO, get_args, get_origin, get_type_hints

from .ai.auto_title import generate_title_and_tags
from .ai.client import StreamClient
from .ai.errors import ConfigurationError
from .ai.prompts import ActionKind, TemplateKind
from .chat.message_model import ChatMessage, NoteContext
from .chat.session import ChatSessionController
from .editor.diff_controller import ActiveDiff, DiffController
from .editor.sync_guard import SyncGuard
from .editor.text_surface import PlainTextSurface
from .services.message_store import SqliteMessageStore
from .services.settings import Settings, SettingsStore, active_env_overrides, redact_secret
from .utils import logging as logging_utils

_TRUE_VALUES = {"1", "true", "yes", "on", "debug"}
_FALSE_VALUES = {"0", "false", "no", "off", "disabled"}
_LOGGER = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_CONFIG = 2

InputFunc = Callable[[str], str]


def configure_logging(debug: bool = False, *, force: bool = False) -> None:
    level = logging.DEBUG if debug else logging.INFO
    logging_utils.setup_logging(level, force=force)
    _LOGGER.debug("Logging configured (level=%s)", logging.getLevelName(level))


def load_settings(
    path: Optional[Path] = None,
    *,
    store: SettingsStore | None = None,
    overrides: Mapping[str, Any] | None = None,
) -> Settings:
    """Load persisted settings or fall back to defaults."""

    active_store = store or SettingsStore(path)
    try:
        return active_store.load(overrides=overrides)
    except OSError as exc:
        _LOGGER.warning("Failed to load settings from %s: %s", active_store.path, exc)
        return Settings()


def main(argv: Sequence[str] | None = None) -> int:
    """Entry point invoked by the ``notewise`` console script."""

    parser = _build_parser()
    args = parser.parse_args(argv)

    debug = bool(args.debug) or _env_flag("NOTEWISE_DEBUG", default=False)
    configure_logging(debug)

    settings_path = args.settings_path or os.environ.get("NOTEWISE_SETTINGS_PATH")
    resolved_path = Path(settings_path).expanduser() if settings_path else None
    settings_store = SettingsStore(resolved_path)
    try:
        cli_overrides = _coerce_cli_overrides(args.overrides or [])
    except ValueError as exc:
        print(f"Invalid --set override: {exc}", file=sys.stderr)
        return EXIT_CONFIG

    settings = load_settings(resolved_path, store=settings_store, overrides=cli_overrides or None)

    if args.dump_settings:
        _dump_settings(settings, settings_store, overrides=cli_overrides)
        return EXIT_OK

    if settings.debug_logging and not debug:
        configure_logging(True, force=True)
        debug = True

    if args.command is None:
        parser.print_help()
        return EXIT_CONFIG

    try:
        _require_credentials(settings)
        if args.command == "run":
            return asyncio.run(_run_action(args, settings, debug=debug))
        if args.command == "chat":
            return asyncio.run(_chat_repl(args, settings, debug=debug))
        if args.command == "title":
            return asyncio.run(_suggest_title(args, settings))
    except ConfigurationError as exc:
        print(exc.message, file=sys.stderr)
        return EXIT_CONFIG
    except KeyboardInterrupt:  # pragma: no cover - manual shutdown path
        _LOGGER.info("Interrupted by user.")
        return EXIT_FAILURE
    parser.error(f"unknown command {args.command!r}")
    return EXIT_CONFIG


# ---------------------------------------------------------------------------
# Subcommands
# ---------------------------------------------------------------------------
async def _run_action(
    args: argparse.Namespace,
    settings: Settings,
    *,
    debug: bool = False,
    input_func: InputFunc = input,
    out: TextIO | None = None,
) -> int:
    """Stream one document action over a text file and apply it on acceptance."""

    stdout = out or sys.stdout
    path = Path(args.file)
    text = path.read_text(encoding="utf-8")
    surface = PlainTextSurface(text, selection=args.select)
    committed: list[str] = []
    printed = [0]

    def _on_state_change(state: object) -> None:
        if isinstance(state, ActiveDiff) and len(state.generated_text) > printed[0]:
            stdout.write(state.generated_text[printed[0]:])
            stdout.flush()
            printed[0] = len(state.generated_text)

    client = StreamClient(settings.client_settings(debug_logging=debug))
    controller = DiffController(
        surface,
        client,
        on_content_change=committed.append,
        title_provider=lambda: args.title or path.stem,
        on_state_change=_on_state_change,
        sync_guard=SyncGuard(hold_seconds=settings.sync_hold_seconds),
        context_chars=settings.context_chars,
        prompt_context_chars=settings.prompt_context_chars,
        error_display_seconds=settings.error_display_seconds,
    )
    try:
        if not controller.activate(args.action, instruction=args.instruction, template=args.template):
            reason = controller.error_message or "Action could not be started"
            print(reason, file=sys.stderr)
            return EXIT_FAILURE
        try:
            await client.wait()
        except asyncio.CancelledError:
            controller.discard()
            raise
        stdout.write("\n")

        if not controller.is_active:
            print(controller.error_message or "Generation failed", file=sys.stderr)
            return EXIT_FAILURE
        accepted = bool(args.yes) or _confirm(input_func, "Accept the generated text? [y/N] ")
        if accepted and controller.accept():
            path.write_text(committed[-1], encoding="utf-8")
            print(f"Updated {path}", file=sys.stderr)
            return EXIT_OK
        controller.discard()
        print("Discarded generated text", file=sys.stderr)
        return EXIT_OK
    finally:
        controller.close()
        await client.aclose()


async def _chat_repl(
    args: argparse.Namespace,
    settings: Settings,
    *,
    debug: bool = False,
    input_func: InputFunc = input,
    out: TextIO | None = None,
    store: SqliteMessageStore | None = None,
) -> int:
    """Interactive conversation about one note."""

    stdout = out or sys.stdout
    message_store = store or SqliteMessageStore(settings.database_path)
    client = StreamClient(settings.client_settings(debug_logging=debug))
    renderer = _ChatRenderer(stdout)
    session = ChatSessionController(
        message_store,
        client,
        on_change=lambda: renderer.refresh(session),
        context_chars=settings.chat_context_chars,
    )
    note_content = Path(args.note_file).read_text(encoding="utf-8") if args.note_file else ""
    session.open_note(NoteContext(note_id=args.note_id, title=args.title or "", content=note_content))
    _print_history(session.messages, stdout)
    try:
        while True:
            try:
                line = await asyncio.to_thread(input_func, "you> ")
            except EOFError:
                break
            command = line.strip()
            if not command:
                continue
            if command in {"/quit", "/exit"}:
                break
            started = _dispatch_chat_command(session, command, stdout)
            if started:
                await client.wait()
                renderer.finish()
                _print_last_reply(session.messages, stdout)
    finally:
        session.close()
        await client.aclose()
        if store is None:
            message_store.close()
    return EXIT_OK


async def _suggest_title(args: argparse.Namespace, settings: Settings, *, out: TextIO | None = None) -> int:
    stdout = out or sys.stdout
    content = Path(args.file).read_text(encoding="utf-8")
    suggestion = await generate_title_and_tags(
        settings.client_settings(),
        content,
        current_title=args.current_title,
    )
    if suggestion.is_empty:
        print("No suggestion available", file=sys.stderr)
        return EXIT_FAILURE
    json.dump({"title": suggestion.title, "tags": suggestion.tags}, stdout, ensure_ascii=False)
    stdout.write("\n")
    return EXIT_OK


# ---------------------------------------------------------------------------
# Chat helpers
# ---------------------------------------------------------------------------
class _ChatRenderer:
    """Echoes the streaming assistant reply as it grows."""

    def __init__(self, stream: TextIO) -> None:
        self._stream = stream
        self._printed = 0

    def refresh(self, session: ChatSessionController) -> None:
        pending = session.pending
        if pending is None:
            return
        text = pending.streaming_assistant_text
        if self._printed == 0 and text:
            self._stream.write("assistant> ")
        if len(text) > self._printed:
            self._stream.write(text[self._printed:])
            self._stream.flush()
            self._printed = len(text)

    def finish(self) -> None:
        if self._printed:
            self._stream.write("\n")
        self._printed = 0


def _dispatch_chat_command(session: ChatSessionController, command: str, out: TextIO) -> bool:
    """Run one REPL line; returns ``True`` when a reply is being generated."""

    if not command.startswith("/"):
        return session.send(command)
    name, _, rest = command.partition(" ")
    rest = rest.strip()
    if name == "/history":
        _print_history(session.messages, out)
        return False
    if name == "/clear":
        session.clear()
        out.write("Conversation cleared\n")
        return False
    if name == "/delete":
        message_id = _parse_message_id(rest, out)
        if message_id is not None and not session.delete(message_id):
            out.write(f"No message {message_id}\n")
        return False
    if name == "/retry":
        target = _parse_message_id(rest, out) if rest else _last_assistant_id(session.messages)
        if target is None:
            out.write("Nothing to retry\n")
            return False
        if not session.retry(target):
            out.write(f"Cannot retry message {target}\n")
            return False
        return True
    if name == "/edit":
        raw_id, _, new_text = rest.partition(" ")
        message_id = _parse_message_id(raw_id, out)
        if message_id is None:
            return False
        if not session.edit(message_id, new_text):
            out.write(f"Cannot edit message {message_id}\n")
            return False
        return True
    out.write(f"Unknown command {name}\n")
    return False


def _print_history(messages: Sequence[ChatMessage], out: TextIO) -> None:
    for message in messages:
        out.write(f"[{message.id}] {message.role}> {message.content}\n")


def _print_last_reply(messages: Sequence[ChatMessage], out: TextIO) -> None:
    if messages and messages[-1].is_error:
        out.write(f"[{messages[-1].id}] assistant> {messages[-1].content}\n")


def _last_assistant_id(messages: Sequence[ChatMessage]) -> int | None:
    for message in reversed(messages):
        if message.is_assistant:
            return message.id
    return None


def _parse_message_id(raw: str, out: TextIO) -> int | None:
    try:
        return int(raw.strip(), 10)
    except ValueError:
        out.write(f"Invalid message id {raw!r}\n")
        return None


def _confirm(input_func: InputFunc, prompt: str) -> bool:
    try:
        answer = input_func(prompt)
    except EOFError:
        return False
    return answer.strip().lower() in {"y", "yes"}


def _require_credentials(settings: Settings) -> None:
    if not (settings.api_key or "").strip():
        raise ConfigurationError(setting="api_key")
    if not (settings.base_url or "").strip():
        raise ConfigurationError(message="Configure the API base URL in settings first", setting="base_url")


# ---------------------------------------------------------------------------
# Argument parsing
# ---------------------------------------------------------------------------
def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="notewise",
        description="Run Notewise AI writing actions and note chat from the terminal.",
    )
    parser.add_argument(
        "--settings",
        dest="settings_path",
        metavar="PATH",
        help="Override the default ~/.notewise/settings.json path.",
    )
    parser.add_argument(
        "--set",
        dest="overrides",
        metavar="KEY=VALUE",
        action="append",
        default=[],
        help="Override persisted settings for this run (repeatable).",
    )
    parser.add_argument(
        "--dump-settings",
        action="store_true",
        help="Print the effective settings payload (with secrets redacted) and exit.",
    )
    parser.add_argument("--debug", action="store_true", help="Enable debug logging.")

    subparsers = parser.add_subparsers(dest="command")

    run_parser = subparsers.add_parser("run", help="Stream an AI action over a text file.")
    run_parser.add_argument("action", choices=[kind.value for kind in ActionKind])
    run_parser.add_argument("file", metavar="FILE")
    run_parser.add_argument(
        "--select",
        type=_parse_span,
        metavar="START:END",
        help="Character range to act on; defaults to a cursor at the end of the file.",
    )
    run_parser.add_argument("--instruction", help="Free-form instruction for the custom action.")
    run_parser.add_argument("--template", choices=[kind.value for kind in TemplateKind])
    run_parser.add_argument("--title", help="Note title used to ground the prompt.")
    run_parser.add_argument("--yes", action="store_true", help="Accept the generated text without asking.")

    chat_parser = subparsers.add_parser("chat", help="Chat about a note.")
    chat_parser.add_argument("note_id", type=int, metavar="NOTE_ID")
    chat_parser.add_argument("--title", help="Note title.")
    chat_parser.add_argument("--note-file", metavar="FILE", help="File holding the note content.")

    title_parser = subparsers.add_parser("title", help="Suggest a title and tags for a note.")
    title_parser.add_argument("file", metavar="FILE")
    title_parser.add_argument("--current-title", help="Existing title; tags only when it is not a placeholder.")
    return parser


def _parse_span(value: str) -> tuple[int, int]:
    start_text, sep, end_text = value.partition(":")
    try:
        if not sep:
            raise ValueError(value)
        start, end = int(start_text, 10), int(end_text, 10)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"expected START:END, got {value!r}") from exc
    if start < 0 or end < start:
        raise argparse.ArgumentTypeError(f"invalid range {value!r}")
    return start, end


def _env_flag(name: str, *, default: bool = False) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in _TRUE_VALUES


def _coerce_cli_overrides(items: Sequence[str]) -> Dict[str, Any]:
    overrides: Dict[str, Any] = {}
    if not items:
        return overrides

    fields = Settings.__dataclass_fields__  # type: ignore[attr-defined]
    type_hints = get_type_hints(Settings)
    for entry in items:
        if "=" not in entry:
            raise ValueError(f"Override '{entry}' must use KEY=VALUE syntax.")
        key, raw_value = entry.split("=", 1)
        key = key.strip()
        if not key:
            raise ValueError("Override is missing a field name.")
        if key not in fields:
            raise ValueError(f"Unknown setting '{key}'.")
        annotation = type_hints.get(key, fields[key].type)
        overrides[key] = _coerce_value(annotation, raw_value.strip())
    return overrides


def _coerce_value(annotation: Any, raw_value: str) -> Any:
    target = _resolve_annotation(annotation)
    normalized = raw_value.strip()

    if target is str or target is Any:
        return normalized
    if target is bool:
        return _parse_bool(normalized)
    if target is int:
        return int(normalized, 10)
    if target is float:
        return float(normalized)
    if target is dict:
        try:
            payload = json.loads(normalized or "{}")
        except json.JSONDecodeError as exc:
            raise ValueError("Dict overrides must be valid JSON objects") from exc
        if not isinstance(payload, dict):
            raise ValueError("Dict overrides must be valid JSON objects")
        return payload
    return normalized


def _resolve_annotation(annotation: Any) -> Any:
    origin = get_origin(annotation)
    if origin is None:
        return annotation
    if origin in {list, dict}:
        return origin
    args = [arg for arg in get_args(annotation) if arg is not type(None)]
    if not args:
        return origin
    return args[0]


def _parse_bool(value: str) -> bool:
    lowered = value.strip().lower()
    if lowered in _TRUE_VALUES:
        return True
    if lowered in _FALSE_VALUES:
        return False
    raise ValueError(f"Cannot coerce '{value}' to a boolean.")


def _dump_settings(
    settings: Settings,
    store: SettingsStore,
    *,
    overrides: Mapping[str, Any],
    stream: TextIO | None = None,
) -> None:
    destination = stream or sys.stdout
    payload = asdict(settings)
    payload["api_key"] = redact_secret(settings.api_key)
    metadata = {
        "path": str(store.path),
        "secret_backend": store.vault.strategy,
        "cli_overrides": sorted(overrides.keys()),
        "environment_variables": active_env_overrides(),
    }
    json.dump({"settings": payload, "meta": metadata}, destination, indent=2)
    destination.write("\n")


if __name__ == "__main__":  # pragma: no cover - module execution
    sys.exit(main())
