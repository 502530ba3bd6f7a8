#!/usr/bin/env python3
"""Interactive chat CLI for testing the application builder service."""

import sys

import httpx
from rich.console import Console
from rich.markdown import Markdown
from rich.panel import Panel
from rich.prompt import Prompt
from rich.table import Table

from studio.protocol.consumer import StreamConsumer
from studio.protocol.events import ErrorEvent, StatusEvent, TextEvent, ToolCallEvent, ToolCallPreviewEvent

TOOL_ICONS = {"start": "🔧", "complete": "✅", "error": "❌"}


class ChatCLI:
    """Interactive chat interface for the application builder service."""

    def __init__(self, base_url: str = "http://localhost:8000", project_id: str = "cli-project"):
        """Initialize chat CLI."""
        self.base_url = base_url
        self.project_id = project_id
        self.user_id = "cli-user"
        self.plan_mode = False
        self.history: list[dict[str, str]] = []
        self.console = Console()
        self.client = httpx.Client(timeout=httpx.Timeout(30.0, read=300.0))

    def start(self) -> None:
        """Start the interactive chat session."""
        self.console.print(
            Panel.fit(
                "[bold blue]🛠️  Studio - Interactive Chat[/bold blue]\n"
                f"Project: [bold]{self.project_id}[/bold]\n"
                "Commands: /help, /files, /plan, /clear, /quit",
                border_style="blue",
            )
        )

        if not self._test_connection():
            self.console.print(f"[red]❌ Cannot connect to the service at {self.base_url}.[/red]")
            return

        self.console.print("[green]✅ Connected to studio service[/green]\n")

        try:
            while True:
                user_input = Prompt.ask("\n[bold cyan]You[/bold cyan]")
                command = user_input.strip().lower()

                if command in ["/quit", "/exit", "quit", "exit"]:
                    break
                elif command == "/help":
                    self._show_help()
                    continue
                elif command == "/files":
                    self._show_files()
                    continue
                elif command == "/plan":
                    self.plan_mode = not self.plan_mode
                    self.console.print(f"[yellow]📝 Plan mode {'on' if self.plan_mode else 'off'}[/yellow]")
                    continue
                elif command == "/clear":
                    self.history = []
                    self.console.print("[yellow]🔄 Conversation cleared[/yellow]")
                    continue
                elif command == "":
                    continue

                reply = self._send_message(user_input)
                if reply is not None:
                    self.history.append({"role": "user", "content": user_input})
                    self.history.append({"role": "assistant", "content": reply})

        except KeyboardInterrupt:
            pass
        finally:
            self.console.print("\n[yellow]👋 Goodbye![/yellow]")
            self.client.close()

    def _test_connection(self) -> bool:
        """Test connection to the service."""
        try:
            response = self.client.get(f"{self.base_url}/health")
            return response.status_code == 200
        except httpx.HTTPError:
            return False

    def _send_message(self, message: str) -> str | None:
        """Stream one chat turn and print events as they arrive."""
        payload = {
            "messages": [*self.history, {"role": "user", "content": message}],
            "projectId": self.project_id,
            "userId": self.user_id,
            "planMode": self.plan_mode,
        }
        consumer = StreamConsumer()

        try:
            with self.client.stream("POST", f"{self.base_url}/chat", json=payload) as response:
                if response.status_code != 200:
                    response.read()
                    self.console.print(f"[red]❌ API Error: {response.status_code} - {response.text}[/red]")
                    return None

                for chunk in response.iter_bytes():
                    for event in consumer.feed(chunk):
                        self._display_event(event)

        except httpx.HTTPError as e:
            self.console.print(f"[red]❌ Connection error: {e}[/red]")
            return None

        state = consumer.close()
        self.console.print()

        if state.content:
            self.console.print(
                Panel(
                    Markdown(state.content),
                    title="[bold green]🤖 Assistant[/bold green]",
                    border_style="green",
                    padding=(1, 2),
                )
            )
        if state.thinking_seconds is not None:
            self.console.print(f"[dim]Thought for {state.thinking_seconds:.1f}s[/dim]")
        if state.error and state.error.recoverable:
            self.console.print("[yellow]The error above is temporary. Send the message again to retry.[/yellow]")

        return state.content

    def _display_event(self, event) -> None:
        """Print the events worth showing while the turn streams."""
        if isinstance(event, TextEvent):
            self.console.print(event.content, end="", style="dim", markup=False, highlight=False)
        elif isinstance(event, ToolCallPreviewEvent):
            self.console.print(f"\n[dim]📋 planned {event.name}[/dim]")
        elif isinstance(event, ToolCallEvent):
            target = (event.args or {}).get("path") or (event.args or {}).get("query") or ""
            line = f"{TOOL_ICONS[event.status]} {event.name} {target}".rstrip()
            if event.status == "error":
                self.console.print(f"[red]{line}: {event.error}[/red]")
            else:
                self.console.print(f"[cyan]{line}[/cyan]")
        elif isinstance(event, StatusEvent) and event.message:
            self.console.print(f"\n[yellow]ℹ️  {event.message}[/yellow]")
        elif isinstance(event, ErrorEvent):
            self.console.print(f"\n[red]❌ {event.error}[/red]")

    def _show_files(self) -> None:
        """Show the project's files."""
        try:
            response = self.client.get(f"{self.base_url}/projects/{self.project_id}/files")
            response.raise_for_status()
        except httpx.HTTPError as e:
            self.console.print(f"[red]❌ Could not list files: {e}[/red]")
            return

        table = Table(title=f"📁 {self.project_id}")
        table.add_column("Path")
        table.add_column("Language")
        table.add_column("Size", justify="right")
        for project_file in response.json()["files"]:
            table.add_row(project_file["path"], project_file["language"], str(project_file["size"]))
        self.console.print(table)

    def _show_help(self) -> None:
        """Show help information."""
        help_text = """
[bold]Available Commands:[/bold]
• /help - Show this help message
• /files - List the project's files
• /plan - Toggle plan mode (the assistant writes a plan before using tools)
• /clear - Clear the conversation and start over
• /quit or /exit - Exit the chat

[bold]Example Conversation:[/bold]
1. "Create a landing page for a coffee shop"
2. "Add a contact form to the landing page"
3. "Build a complete e-commerce dashboard" (gets a larger step budget)
        """

        self.console.print(Panel(help_text.strip(), title="[cyan]❓ Help[/cyan]", border_style="cyan"))


def main():
    """Main entry point for the chat CLI."""
    base_url = sys.argv[1] if len(sys.argv) > 1 else "http://localhost:8000"
    project_id = sys.argv[2] if len(sys.argv) > 2 else "cli-project"

    chat = ChatCLI(base_url, project_id)
    chat.start()


if __name__ == "__main__":
    main()
