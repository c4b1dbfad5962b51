"""Command-line bridge between the exported document and the agent process."""

from __future__ import annotations

import argparse
import logging
import os
import subprocess
import sys
import time
from datetime import datetime
from pathlib import Path

from quill import config
from quill.models import ExportSnapshot
from quill.prompts import build_edit_prompt, build_humanize_prompt
from quill.storage import modified_time, read_json

log = logging.getLogger(__name__)

COMMAND_ALIASES = {
    "prompt": "prompt",
    "show": "prompt",
    "status": "status",
    "info": "status",
    "edit": "edit",
    "claude": "edit",
    "humanize": "humanize",
    "compound": "humanize",
    "watch": "watch",
    "copy": "copy",
}


class ExportFileError(RuntimeError):
    """Raised when document.json is missing or cannot be parsed."""


class AgentLaunchError(RuntimeError):
    """Raised when the agent executable cannot be started."""


def load_export(path: Path) -> ExportSnapshot:
    try:
        return ExportSnapshot.model_validate(read_json(path))
    except FileNotFoundError as exc:
        raise ExportFileError(f"No document found at {path}. Open a file in Quill first.") from exc
    except (OSError, ValueError) as exc:
        raise ExportFileError(f"Failed to parse {path.name}: {exc}") from exc


def format_status(export: ExportSnapshot) -> str:
    count = len(export.annotations)
    lines = [
        export.title or export.filename or "Untitled",
        f"   {export.word_count} words",
        f"   {count} annotation{'' if count == 1 else 's'}",
    ]
    if export.filepath:
        lines.append(f"   {export.filepath}")
    if count:
        lines.append("")
        lines.append("Annotations:")
        for idx, ann in enumerate(export.annotations, start=1):
            preview = ann.text[:40] + ("..." if len(ann.text) > 40 else "")
            category = f"[{ann.category}] " if ann.category else ""
            lines.append(f'   {idx}. {category}"{preview}" - {ann.comment}')
    return "\n".join(lines)


def launch_agent(prompt: str) -> int:
    try:
        completed = subprocess.run([config.AGENT_COMMAND, "-p", prompt], check=False)
    except OSError as exc:
        raise AgentLaunchError(
            f"Failed to launch '{config.AGENT_COMMAND}': {exc}. Make sure it is in your PATH."
        ) from exc
    return completed.returncode


def notification_command(title: str, message: str) -> list[str]:
    if config.NOTIFY_COMMAND:
        return [config.NOTIFY_COMMAND, title, message]
    if sys.platform == "darwin":
        return ["osascript", "-e", f'display notification "{message}" with title "{title}"']
    return ["notify-send", title, message]


def clipboard_command() -> list[str]:
    if config.CLIPBOARD_COMMAND:
        return config.CLIPBOARD_COMMAND.split()
    if sys.platform == "darwin":
        return ["pbcopy"]
    if os.environ.get("WAYLAND_DISPLAY"):
        return ["wl-copy"]
    return ["xclip", "-selection", "clipboard"]


def copy_to_clipboard(text: str) -> bool:
    try:
        subprocess.run(clipboard_command(), input=text, text=True, check=True, capture_output=True)
    except (OSError, subprocess.CalledProcessError) as exc:
        log.warning("Clipboard copy failed: %s", exc)
        return False
    return True


def send_notification(title: str, message: str) -> None:
    try:
        subprocess.run(notification_command(title, message), check=False, capture_output=True)
    except OSError as exc:
        log.debug("Desktop notification failed: %s", exc)


def watch_export(path: Path, interval: float, max_checks: int | None = None) -> None:
    print(f"Watching {path} for changes...")
    print("Press Ctrl+C to stop\n")
    last_mtime: int | None = None
    checks = 0
    while max_checks is None or checks < max_checks:
        checks += 1
        try:
            mtime = modified_time(path)
        except OSError as exc:
            log.warning("Cannot access %s: %s", path, exc)
            mtime = None
        if mtime is not None and last_mtime is not None and mtime != last_mtime:
            try:
                count = len(load_export(path).annotations)
            except ExportFileError as exc:
                log.warning("%s", exc)
            else:
                send_notification("Quill Updated", f"{count} annotation(s) ready")
                stamp = datetime.now().strftime("%H:%M:%S")
                print(f"[{stamp}] Document updated: {count} annotation(s)")
        if mtime is not None:
            last_mtime = mtime
        if max_checks is None or checks < max_checks:
            time.sleep(interval)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="quill",
        description="Bridge between the Quill editor export and an agent CLI.",
    )
    parser.add_argument(
        "command",
        nargs="?",
        default="prompt",
        choices=sorted(COMMAND_ALIASES),
        help="prompt|show, status|info, edit|claude, humanize|compound, watch, copy.",
    )
    parser.add_argument(
        "--export-path",
        default=None,
        help="Path of the exported document.json (defaults to the shared Quill directory).",
    )
    parser.add_argument(
        "--interval",
        type=float,
        default=None,
        help="Polling interval in seconds for the watch command.",
    )
    return parser


def run(command: str, export_path: Path, interval: float) -> int:
    command = COMMAND_ALIASES[command]

    if command == "watch":
        try:
            watch_export(export_path, interval=max(0.1, interval))
        except KeyboardInterrupt:
            print("\nStopped watching.")
        return 0

    export = load_export(export_path)
    if command == "prompt":
        print(export.prompt)
        return 0
    if command == "status":
        print(format_status(export))
        return 0
    if command == "copy":
        if copy_to_clipboard(export.prompt):
            print("Prompt copied to clipboard")
        else:
            print("Failed to copy, printing the prompt instead.", file=sys.stderr)
            print("\n" + export.prompt)
        return 0

    if command == "edit":
        if not export.annotations:
            print("No annotations to process. Add some feedback in Quill first.")
            return 0
        print(f"Opening agent with {len(export.annotations)} annotation(s)...")
        prompt = build_edit_prompt(export)
    else:
        print(f'Running compound-writing on "{export.title or export.filename}"...')
        print(f"{len(export.annotations)} annotation(s) to address\n")
        prompt = build_humanize_prompt(export)
    return 0 if launch_agent(prompt) == 0 else 1


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(level=config.LOG_LEVEL, format="%(levelname)s %(name)s: %(message)s")
    export_path = Path(args.export_path).expanduser() if args.export_path else config.EXPORT_PATH
    interval = config.CLI_WATCH_INTERVAL_S if args.interval is None else args.interval
    try:
        return run(args.command, export_path, interval)
    except (ExportFileError, AgentLaunchError) as exc:
        print(str(exc), file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
