import logging
import os
import subprocess
import sys
import webbrowser
from contextlib import contextmanager
from typing import Callable, Iterator, List, Optional

import typer
from rich import box
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.prompt import Prompt
from rich.table import Table

import database
from book import Book
from config import settings
from library import Library
from utils.ui_helpers import format_book_line, print_list_result, print_stats_result, set_output_mode
from utils.validators import QuantityValidator, TextValidator

logging.basicConfig(level=settings.log_level)
logger = logging.getLogger(__name__)

APP_NAME = settings.app_name

console = Console()


@contextmanager
def open_library(save: bool = False) -> Iterator[Library]:
    """Load the stored catalog for one command and write it back if asked."""
    lib = database.load_library()
    yield lib
    if save:
        database.save_library(lib)


# --- Typer CLI Application ---
app = typer.Typer(help="Library inventory CLI")

@app.callback()
def _global_options(
    output: Optional[str] = typer.Option(
        None,
        "--output",
        "-o",
        help="Output format: plain | json | rich (default: plain)",
    )
):
    """Global CLI options (e.g. output mode)."""
    if output:
        set_output_mode(output)

@app.command("add")
def cli_add(title: str, author: str, quantity: int):
    """Add copies of a book; the first add of a title/author creates it."""
    if not (TextValidator.validate_title(title) and TextValidator.validate_author(author)):
        print("Error: title and author cannot be empty.")
        return
    with open_library(save=True) as lib:
        if lib.add_book(title, author, quantity):
            print(f"Added {quantity} copies of '{title.strip()}' by {author.strip()}.")
        else:
            print(f"Error: quantity must be a positive integer, got {quantity}.")

@app.command("find")
def cli_find(title: str):
    """Show every book filed under a title (case-insensitive)."""
    with open_library() as lib:
        books = lib.find_book(title)
    if not books:
        print(f"No books titled '{title}'.")
        return
    print_list_result(books)

def _select_book(lib: Library, title: str, author: Optional[str]) -> Optional[Book]:
    """Resolve a title (and optional author) to exactly one book, or explain why not."""
    books = lib.find_book(title)
    if not books:
        print(f"No books titled '{title}'.")
        return None
    if author:
        match = next((b for b in books if b.matches_author(author)), None)
        if match is None:
            print(f"No copy of '{title}' by {author}.")
        return match
    if len(books) > 1:
        print(f"Several books are titled '{title}'; pick one with --author:")
        for b in books:
            print(f"  {format_book_line(b)}")
        return None
    return books[0]

@app.command("borrow")
def cli_borrow(
    title: str,
    quantity: int,
    author: Optional[str] = typer.Option(None, "--author", "-a", help="Author, when several books share the title"),
):
    """Borrow copies of a book."""
    if not QuantityValidator.is_positive(quantity):
        print(f"Error: quantity must be a positive integer, got {quantity}.")
        return
    with open_library(save=True) as lib:
        book = _select_book(lib, title, author)
        if book is None:
            return
        if lib.borrow_book(book, quantity):
            print(f"Borrowed {quantity} copies of '{book.title}'. {book.copies_available} remaining.")
        else:
            print(f"Error: only {book.copies_available} copies of '{book.title}' are available (requested: {quantity}).")

@app.command("return")
def cli_return(
    title: str,
    quantity: int,
    author: Optional[str] = typer.Option(None, "--author", "-a", help="Author, when several books share the title"),
):
    """Return copies of a book."""
    if not QuantityValidator.is_positive(quantity):
        print(f"Error: quantity must be a positive integer, got {quantity}.")
        return
    with open_library(save=True) as lib:
        book = _select_book(lib, title, author)
        if book is None:
            return
        lib.return_book(book, quantity)
        print(f"Returned {quantity} copies of '{book.title}'. Total stock: {book.copies_available}.")

@app.command("list")
def cli_list():
    """List every book in the inventory."""
    with open_library() as lib:
        print_list_result(lib.list_books())

@app.command("stats")
def cli_stats():
    """Show inventory statistics."""
    with open_library() as lib:
        print_stats_result(lib.get_statistics())

@app.command("serve")
def cli_serve(timeout: int = typer.Option(0, "--timeout", help="Seconds to run before exiting (0 = no timeout)")):
    """Start the REST API with uvicorn."""
    host = settings.api_host
    port = int(settings.api_port)
    url = f"http://{host}:{port}/docs"
    print(f"Starting API on {url}")
    try:
        webbrowser.open(url)
    except Exception:
        logger.warning("Could not open a web browser")
    args = [
        sys.executable,
        "-m", "uvicorn",
        "api:app",
        "--host", host,
        "--port", str(port),
    ]
    try:
        if timeout and timeout > 0:
            # No reloader in timeout mode so terminate() stops the server itself
            start_new_session = os.name != "nt"
            proc = subprocess.Popen(args, start_new_session=start_new_session)
            try:
                proc.wait(timeout=timeout)
            except subprocess.TimeoutExpired:
                proc.terminate()
                try:
                    proc.wait(timeout=5)
                except subprocess.TimeoutExpired:
                    proc.kill()
        else:
            args.append("--reload")
            subprocess.run(args)
    except FileNotFoundError:
        print("Error: uvicorn could not be started. Make sure it is installed.")

@app.command("menu")
def cli_menu():
    """Run the interactive menu."""
    lib = database.load_library()
    run_menu(lib, save=database.save_library)


# --- Interactive menu ---
def ask_text(prompt: str) -> str:
    return Prompt.ask(prompt, console=console).strip()

def ask_quantity(prompt: str) -> int:
    """Prompt until a non-negative integer is entered. 0 means cancel."""
    while True:
        raw = Prompt.ask(prompt, console=console)
        try:
            return QuantityValidator.parse(raw)
        except ValueError as e:
            console.print(f"[yellow]Invalid input. {e}[/]")

def ask_choice(books: List[Book]) -> Book:
    """Let the user pick one of several books sharing a title (1-based)."""
    console.print()
    for i, book in enumerate(books, 1):
        console.print(f"{i}. {escape(book.title)} by {escape(book.author)}")
    while True:
        raw = Prompt.ask("Which book exactly? (Enter the number)", console=console)
        try:
            choice = int(raw.strip())
        except ValueError:
            choice = 0
        if 1 <= choice <= len(books):
            return books[choice - 1]
        console.print(f"[yellow]Invalid input. Please enter a number between 1 and {len(books)}.[/]")

def _pick_book(library: Library, prompt: str) -> Optional[Book]:
    title = ask_text(prompt)
    books = library.find_book(title)
    if not books:
        console.print("[yellow]Title not found.[/]")
        return None
    if len(books) == 1:
        return books[0]
    return ask_choice(books)

def handle_add(library: Library) -> bool:
    author = ask_text("Author?")
    title = ask_text("Title?")
    if not (TextValidator.validate_title(title) and TextValidator.validate_author(author)):
        console.print("[yellow]Title and author cannot be empty.[/]")
        return False
    quantity = ask_quantity("Quantity? (Enter 0 to cancel)")
    if quantity == 0:
        console.print("Action cancelled.")
        return False
    if library.add_book(title, author, quantity):
        console.print("[green]Book added/updated successfully![/]")
        return True
    console.print("[red]Book could not be added.[/]")
    return False

def handle_borrow(library: Library) -> bool:
    book = _pick_book(library, "Title to borrow?")
    if book is None:
        return False
    # Keep asking until the borrow succeeds or the user cancels
    while True:
        quantity = ask_quantity(f"Quantity to borrow? ({book.copies_available} available, 0 to cancel)")
        if quantity == 0:
            console.print("Transaction cancelled.")
            return False
        if library.borrow_book(book, quantity):
            console.print("[green]Book(s) borrowed successfully![/]")
            return True
        console.print(f"[red]Only {book.copies_available} copies available (requested: {quantity}).[/]")

def handle_return(library: Library) -> bool:
    book = _pick_book(library, "Title to return?")
    if book is None:
        return False
    quantity = ask_quantity("Quantity to return? (Enter 0 to cancel)")
    if quantity == 0:
        console.print("Transaction cancelled.")
        return False
    library.return_book(book, quantity)
    console.print("[green]Book(s) returned successfully![/]")
    return True

def list_inventory(library: Library) -> bool:
    books = library.list_books()
    if not books:
        console.print("[yellow]The library is currently empty.[/]")
        return False

    table = Table(title="📚 Current Inventory", show_lines=True, header_style="bold cyan")
    table.add_column("ID", style="magenta", no_wrap=True)
    table.add_column("Title", style="white")
    table.add_column("Author", style="white")
    table.add_column("Available", justify="right", style="green")
    for book in books:
        table.add_row(str(book.id), escape(book.title), escape(book.author), str(book.copies_available))
    console.print(table)
    return False

MENU_ITEMS = [
    ("1", "Add book", "➕", handle_add),
    ("2", "Borrow book", "📤", handle_borrow),
    ("3", "Return book", "📥", handle_return),
    ("4", "List inventory", "📚", list_inventory),
    ("5", "Exit", "🚪", None),
]

def run_menu(library: Library, save: Optional[Callable[[Library], object]] = None) -> None:
    """Interactive menu over `library`; `save` is called after every change."""
    def render_menu() -> None:
        table = Table.grid(padding=(0, 2))
        table.add_column(justify="right", style="bold cyan", width=4)
        table.add_column(justify="left", style="white")
        for key, label, icon, _ in MENU_ITEMS:
            table.add_row(f"[reverse]{key}[/]", f"{icon} {label}")
        console.print(Panel(table, title=APP_NAME, border_style="cyan", box=box.HEAVY, padding=(1, 2)))

    handlers = {key: handler for key, _, _, handler in MENU_ITEMS}
    console.print(f"Welcome to {escape(APP_NAME)}!")
    while True:
        render_menu()
        choice = Prompt.ask("Please enter your choice", choices=list(handlers), console=console).strip()
        handler = handlers.get(choice)
        if handler is None:
            console.print("[green]Exiting application. Goodbye![/]")
            break
        if handler(library) and save is not None:
            save(library)
        console.print()

if __name__ == "__main__":
    if len(sys.argv) > 1:
        app()
    else:
        cli_menu()
