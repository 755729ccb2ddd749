"""
CLI Demo Application
Interactive tutoring session in the terminal (Gemini).
"""

import argparse
import asyncio
import os
import sys

from rich.console import Console
from rich.panel import Panel
from rich.prompt import Prompt

_PROJECT_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
sys.path.insert(0, _PROJECT_ROOT)
_DEFAULT_LOG_DIR = os.path.join(_PROJECT_ROOT, "conversation_logger", "cli")

from tutor_engine import ChatAssistant, TutorConfig

console = Console()


async def run(args) -> None:
    config = TutorConfig.from_env()
    if args.model:
        config.model = args.model
    if args.no_search:
        config.enable_web_search = False
    if args.verbose:
        config.log_level = "DEBUG"

    try:
        assistant = ChatAssistant(config=config, log_dir=None if args.no_log else args.log_dir)
    except Exception as e:
        console.print(f"[red]Error initializing assistant: {e}[/red]")
        console.print("\n[bold]Make sure you have:[/bold]")
        console.print("  1. Set GEMINI_API_KEY (or GOOGLE_API_KEY) in .env")
        console.print("  2. Run: pip install -e .")
        sys.exit(1)

    if not await assistant.start(
        subject=args.subject,
        difficulty=args.difficulty,
        user_id=args.user,
        session_id=args.resume,
    ):
        sys.exit(1)
    if not args.no_log:
        console.print(f"[dim]Transcript: {assistant.store.log_path(assistant.engine.session.id)}[/dim]")

    console.print(Panel(
        "[bold cyan]Adaptive Tutor Demo[/bold cyan]\n\n"
        "Commands: 'exit'/'quit' to end the session | 'stats' for session metrics | "
        "'memory' for session memory | 'why' for the last query analysis",
        title="Welcome",
        border_style="cyan"
    ))
    console.print()

    while True:
        try:
            console.print(f"[dim]Suggestions: {' | '.join(assistant.engine.quick_replies)}[/dim]")
            user_input = Prompt.ask("[bold green]You[/bold green]")
            command = user_input.strip().lower()

            if command in ["exit", "quit", "q"]:
                await assistant.finish()
                console.print("[yellow]Goodbye![/yellow]")
                break
            if command == "stats":
                assistant.display_metrics()
                continue
            if command == "memory":
                assistant.display_memory()
                continue
            if command == "why":
                assistant.display_analysis()
                continue
            if not command:
                continue

            reply = await assistant.ask(user_input)
            if reply is None:
                console.print("[dim](message ignored)[/dim]")
            elif args.verbose:
                assistant.display_analysis()

        except KeyboardInterrupt:
            console.print("\n[yellow]Interrupted. Type 'exit' to quit.[/yellow]\n")
        except Exception as e:
            console.print(f"[red]Error: {e}[/red]\n")


def main():
    """Main CLI demo"""
    parser = argparse.ArgumentParser(description="Adaptive Tutor Demo (Gemini)")
    parser.add_argument("--model", type=str, default=None, help="Gemini model name (default: gemini-2.0-flash)")
    parser.add_argument("--subject", type=str, default="Mathematics", help="Session subject")
    parser.add_argument("--difficulty", type=str, default="Intermediate", help="Session difficulty")
    parser.add_argument("--user", type=str, default="anonymous", help="Learner id")
    parser.add_argument("--resume", type=str, default=None, help="Session id to resume from its transcript")
    parser.add_argument(
        "--log-dir",
        type=str,
        default=_DEFAULT_LOG_DIR,
        help="Directory for JSONL transcripts (default: conversation_logger/cli/)"
    )
    parser.add_argument("--no-log", action="store_true", help="Keep the transcript in memory only")
    parser.add_argument("--no-search", action="store_true", help="Disable the web-search gateway")
    parser.add_argument("--verbose", action="store_true", help="Show query analysis and debug logs")

    asyncio.run(run(parser.parse_args()))


if __name__ == "__main__":
    main()
