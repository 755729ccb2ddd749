"""
Main Chat Assistant (wiring + CLI display).

Builds a TutorDialogueEngine from configuration:
- LLMClient (Gemini) as generation gateway and quiz answer-key resolver
- WebSearchClient on top of the same client, when enabled
- JsonlSessionStore when a log directory is given, else InMemorySessionStore

and renders engine events to the terminal with rich.
"""

from __future__ import annotations

from typing import List, Optional

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from ..config import TutorConfig
from ..logging_config import configure_logging
from ..memory.session_store import InMemorySessionStore, JsonlSessionStore
from ..schema.core_schema import ChatMessage, MessageRole, MessageTag, QueryAnalysis, SessionMetrics
from .events import EngineEvent, EventKind
from .llm_client import LLMClient
from .tutor_engine import TutorDialogueEngine
from .web_search import WebSearchClient


console = Console()


class ChatAssistant:
    """Tutoring assistant: engine + Gemini gateways + persistence."""

    def __init__(
        self,
        config: Optional[TutorConfig] = None,
        log_dir: Optional[str] = None,
        llm_client: Optional[LLMClient] = None,
        show_events: bool = True,
    ) -> None:
        """
        Args:
            config: Engine configuration (TutorConfig.from_env() when omitted).
            log_dir: Directory for JSONL transcripts; in-memory only when None.
            llm_client: Pre-built generation gateway (built from config when None).
            show_events: Print quiz / error / summary events as they happen.
        """
        self.config = config or TutorConfig.from_env()
        configure_logging(self.config.log_level)

        self.llm_client = llm_client or LLMClient(self.config)
        self.search_client = (
            WebSearchClient(self.llm_client, self.config) if self.config.enable_web_search else None
        )
        self.store = JsonlSessionStore(log_dir) if log_dir else InMemorySessionStore()
        self.engine = TutorDialogueEngine(
            self.llm_client,
            store=self.store,
            search=self.search_client,
            config=self.config,
            quiz_key_resolver=self.llm_client.extract_quiz_key,
        )
        if show_events:
            self.engine.subscribe(self.on_event)

        console.print("[bold green]Tutor Assistant initialized![/bold green]")
        console.print(
            f"Model: {self.llm_client.model}, web search: "
            f"{'on' if self.search_client else 'off'}, "
            f"transcripts: {log_dir or 'memory only'}\n"
        )

    # ---------------------------------------------------------------------
    # Entrypoints
    # ---------------------------------------------------------------------
    async def start(
        self,
        subject: str = "Mathematics",
        difficulty: str = "Intermediate",
        goals: Optional[List[str]] = None,
        user_id: str = "anonymous",
        session_id: Optional[str] = None,
    ) -> bool:
        session = await self.engine.start_session(subject, difficulty, goals, user_id, session_id)
        if session is None:
            console.print(f"[red]{self.engine.error or 'Could not start session'}[/red]")
            return False
        for message in self.engine.messages:
            self.display_message(message)
        return True

    async def ask(self, text: str) -> Optional[ChatMessage]:
        reply = await self.engine.send_message(text)
        if reply is not None:
            self.display_message(reply)
        return reply

    async def finish(self) -> Optional[ChatMessage]:
        if not self.engine.has_active_session:
            return None
        return await self.engine.end_session()

    # ---------------------------------------------------------------------
    # Events
    # ---------------------------------------------------------------------
    def on_event(self, event: EngineEvent) -> None:
        if event.kind == EventKind.QUIZ_OPENED:
            graded = event.data.get("quiz", {}).get("correct_index") is not None
            console.print(
                f"[magenta]Quiz open, answer with A, B, C or D"
                f"{'' if graded else ' (ungraded)'}[/magenta]"
            )
        elif event.kind == EventKind.ERROR:
            console.print(f"[red]Error: {event.data.get('error')}[/red]")
        elif event.kind == EventKind.SESSION_SUMMARY and event.message is not None:
            self.display_message(event.message)

    # ---------------------------------------------------------------------
    # Display helpers (CLI)
    # ---------------------------------------------------------------------
    def display_message(self, message: ChatMessage) -> None:
        styles = {
            MessageRole.USER: ("You", "cyan"),
            MessageRole.ASSISTANT: ("Tutor", "green"),
            MessageRole.SYSTEM: ("System", "blue"),
            MessageRole.ERROR: ("Error", "red"),
        }
        title, style = styles[message.role]
        if message.tag == MessageTag.WEB_SEARCH:
            source = message.metadata.get("web_search", {})
            title += " · web search" + (" (cached)" if source.get("from_cache") else "")
        elif message.tag is not None:
            title += f" · {message.tag.value.replace('_', ' ')}"
        console.print(Panel(message.text, title=title, border_style=style))

    def display_analysis(self, analysis: Optional[QueryAnalysis] = None) -> None:
        """Display the classification of the last utterance."""
        analysis = analysis or self.engine.last_analysis
        if analysis is None:
            console.print("[yellow]No message analysed yet.[/yellow]")
            return
        console.print("\n[bold cyan]Query Analysis[/bold cyan]")
        console.print("=" * 60)

        table = Table(show_header=False, box=None)
        table.add_column("Field", style="cyan")
        table.add_column("Value", style="white")
        table.add_row("Subject", analysis.subject.value)
        table.add_row("Complexity", analysis.complexity.value)
        table.add_row("Intent", analysis.intent.value)
        table.add_row("Response tier", analysis.response_type.value)
        table.add_row("Learning approach", analysis.learning_approach.value)
        table.add_row("Question type", analysis.question_type)
        table.add_row("Keywords", ", ".join(analysis.keywords) or "(none)")
        console.print(table)

        request = self.engine.last_request
        if request is not None:
            console.print(f"\n[bold blue]Prompt sections:[/bold blue] {' → '.join(request.sections)}")

    def display_metrics(self, metrics: Optional[SessionMetrics] = None) -> None:
        metrics = metrics or self.engine.metrics
        profile = self.engine.profile
        console.print("\n[bold green]Session Metrics[/bold green]")
        console.print("=" * 60)
        table = Table(show_header=False, box=None)
        table.add_column("Metric", style="cyan")
        table.add_column("Value", style="white")
        table.add_row("Messages", f"{metrics.total_messages} ({metrics.user_messages} yours)")
        table.add_row("Duration", f"{metrics.duration_minutes} min")
        table.add_row("Quizzes", f"{metrics.correct_answers}/{metrics.quizzes_taken} correct")
        table.add_row("Engagement", f"{metrics.engagement_score * 100:.0f}%")
        table.add_row("Context size", f"{metrics.context_tokens} tokens")
        if profile is not None:
            table.add_row("Total points", str(profile.total_points))
            for concept, mastery in list(profile.concept_mastery.items())[:5]:
                table.add_row(f"Mastery: {concept}", f"{mastery:.2f}")
        console.print(table)

    def display_memory(self) -> None:
        memory = self.engine.memory
        if memory is None:
            console.print("[yellow]No active session.[/yellow]")
            return
        console.print("\n[bold green]Session Memory[/bold green]")
        console.print("=" * 60)
        console.print(memory.get_context_summary())
        facts = self.engine.fact_extractor.extract(memory.get_all_messages())
        if facts:
            console.print("\n[bold]Key facts:[/bold]")
            for fact in facts:
                console.print(f"  • {fact}")
