"""
AccessAI command line.

Usage:
    # Type commands to the browser agent
    accessai --mode web-sight --input text

    # Speak commands, hear replies
    accessai --mode web-sight --input audio --output audio

    # One command, then exit
    accessai --mode web-sight --prompt "open the second link"

    # Lecture helper / conversation coach (microphone required)
    accessai --mode clear-context --input audio --output audio
    accessai --mode social-cue --input audio --output audio
"""

import argparse
import asyncio
from pathlib import Path

from rich.panel import Panel

from .config import BROWSER_START_URL, CHAT_MODEL, HISTORY_PATH, REALTIME_MODEL
from .errors import AccessAIError
from .logging_setup import console, setup_logging
from .modes import ClearContextController, WebSightController
from .runtime import MODES, Runtime, build_runtime


async def _read_line(prompt: str) -> str:
    return await asyncio.to_thread(input, prompt)


async def text_input_loop(runtime: Runtime) -> None:
    """Read commands from stdin until EOF or 'exit'."""
    controller = runtime.controller
    while True:
        try:
            line = (await _read_line("> ")).strip()
        except EOFError:
            return
        if line.lower() in ("exit", "quit"):
            return
        if not line:
            continue
        if isinstance(controller, WebSightController):
            await controller.handle_command(line)
        elif isinstance(controller, ClearContextController):
            await controller.ask(line)


async def run(args, logger) -> int:
    runtime = await build_runtime(
        args.mode,
        input_mode=args.input,
        output_mode=args.output,
        headless=args.headless,
        url=args.url,
        history_path=Path(args.history_file) if args.history_file else None,
        logger=logger,
    )
    try:
        await runtime.controller.activate()
        if args.prompt:
            await runtime.controller.handle_command(args.prompt)
        elif args.input == "text":
            await text_input_loop(runtime)
        else:
            console.print(Panel("Listening... press Ctrl+C to stop.", title="Microphone", border_style="green"))
            await asyncio.Event().wait()
    finally:
        await runtime.close()
    return 0


def main():
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description="AccessAI - voice-driven accessibility assistant.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--mode", choices=MODES, default="web-sight", help="Assistant mode")
    parser.add_argument(
        "--input",
        choices=["text", "audio"],
        default="text",
        help="Input mode: 'text' for typing, 'audio' for microphone",
    )
    parser.add_argument(
        "--output",
        choices=["text", "audio"],
        default="text",
        help="Output mode: 'text' for console replies, 'audio' for spoken replies",
    )
    parser.add_argument("--prompt", type=str, help="Run one web-sight command and exit (forces text input)")
    parser.add_argument("--url", default=BROWSER_START_URL, help="Page to open when the browser starts")
    parser.add_argument("--headless", action="store_true", help="Run the browser without a window")
    parser.add_argument(
        "--history-file",
        default=str(HISTORY_PATH),
        help="Where command history is kept (empty to disable)",
    )

    args = parser.parse_args()

    if args.prompt:
        if args.mode != "web-sight":
            parser.error("--prompt is only available in web-sight mode")
        args.input = "text"
    if args.mode == "social-cue" and args.input != "audio":
        parser.error("social-cue listens to a conversation; use --input audio")

    logger = setup_logging()
    logger.info("=" * 60)
    logger.info("AccessAI")
    logger.info("=" * 60)
    logger.info(f"Mode: {args.mode}, Input: {args.input}, Output: {args.output}")

    config_message = (
        f"Mode: {args.mode}\n"
        f"Input: {args.input}\n"
        f"Output: {args.output}\n"
        f"Realtime model: {REALTIME_MODEL}\n"
        f"Chat model: {CHAT_MODEL}\n"
        f"Start URL: {args.url}"
    )
    console.print(Panel(config_message, title="Launch Configuration", border_style="cyan"))

    try:
        return asyncio.run(run(args, logger))
    except KeyboardInterrupt:
        logger.info("Shutdown requested by user")
    except AccessAIError as exc:
        console.print(Panel(str(exc), title="Error", border_style="red"))
        logger.error(f"Fatal error: {exc}")
        return 1
    except Exception as exc:
        logger.error(f"Fatal error: {exc}", exc_info=True)
        return 1

    logger.info("AccessAI terminated")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
