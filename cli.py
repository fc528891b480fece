# cli.py
import os
import sys
from datetime import datetime
from typing import List, Dict, Any, Optional

from rich.console import Console
from rich.table import Table
from rich.panel import Panel
from rich.prompt import Confirm, Prompt
from rich.progress import Progress, SpinnerColumn, TextColumn
from rich import box

from prompt_toolkit import prompt
from prompt_toolkit.completion import WordCompleter
from prompt_toolkit.styles import Style as PromptStyle

from sdk.storeclient import StoreClient

console = Console()
c = StoreClient(base_url=os.getenv("STORE_API_URL", "http://127.0.0.1:8000"))


# Global state for status messages and caching
status_message = "Ready"
product_cache: List[Dict[str, Any]] = []
user_cache: List[Dict[str, Any]] = []

custom_style = PromptStyle.from_dict({
    'completion-menu.completion': 'bg:#008888 #ffffff',
    'completion-menu.completion.current': 'bg:#00aaaa #000000',
    'scrollbar.background': 'bg:#88aaaa',
    'scrollbar.button': 'bg:#222222',
})


# ---------------------------
# Display helpers
# ---------------------------
def show_products(products: List[Dict[str, Any]], title: str = "📦 Products Catalog"):
    if not products:
        console.print("[italic yellow]No products found[/italic yellow]")
        return

    table = Table(
        title=title,
        box=box.ROUNDED,
        header_style="bold cyan",
        title_style="bold magenta",
        show_lines=True
    )
    table.add_column("ID", style="dim", width=26)
    table.add_column("Name", style="bold", width=20)
    table.add_column("About", width=30)
    table.add_column("Price", justify="right", width=10)
    table.add_column("Categories", width=20)

    for p in products:
        categories = ", ".join(cat.get("name", "?") for cat in p.get("categories", []))
        table.add_row(
            p.get("id", "N/A"),
            p.get("name", "N/A"),
            p.get("about", ""),
            f"${p.get('price', 0):.2f}",
            categories or "-"
        )
    console.print(table)


def show_users(users: List[Dict[str, Any]]):
    if not users:
        console.print("[italic yellow]No users found[/italic yellow]")
        return

    table = Table(title="👥 Users", box=box.ROUNDED, header_style="bold green", show_lines=True)
    table.add_column("ID", style="dim", width=26)
    table.add_column("Username", style="bold", width=20)
    table.add_column("Email", width=30)
    for u in users:
        table.add_row(u.get("id", "N/A"), u.get("username", "N/A"), u.get("email", "N/A"))
    console.print(table)


def show_orders(orders: List[Dict[str, Any]]):
    if not orders:
        console.print("[italic yellow]No orders found[/italic yellow]")
        return

    table = Table(
        title="📋 Orders",
        box=box.ROUNDED,
        header_style="bold yellow",
        title_style="bold yellow",
        show_lines=True
    )
    table.add_column("Order ID", style="dim", width=14)
    table.add_column("Customer", width=18)
    table.add_column("Contents", width=40)
    table.add_column("Paid", width=6)
    table.add_column("Total", justify="right", width=12)

    for order in orders:
        names = [p.get("name", "?") for p in order.get("products", [])]
        contents = ", ".join(names[:3]) if names else "No items"
        if len(names) > 3:
            contents += f" +{len(names) - 3} more"
        user = order.get("user") or {}
        paid = "[green]yes[/green]" if order.get("payment") else "[yellow]no[/yellow]"
        table.add_row(
            order.get("id", "N/A")[:12] + "...",
            user.get("username", order.get("userId", "?")),
            contents,
            paid,
            f"${order.get('total', 0):.2f}"
        )
    console.print(table)


def show_games(games: List[Dict[str, Any]], limit: int = 20):
    if not games:
        console.print("[italic yellow]No games found[/italic yellow]")
        return

    table = Table(title="🎮 Free-to-play games", box=box.ROUNDED, header_style="bold magenta")
    table.add_column("ID", justify="right", width=6)
    table.add_column("Title", style="bold", width=30)
    table.add_column("Genre", width=16)
    table.add_column("Platform", width=20)
    for g in games[:limit]:
        table.add_row(str(g.get("id", "?")), g.get("title", "N/A"), g.get("genre", ""), g.get("platform", ""))
    console.print(table)
    if len(games) > limit:
        console.print(f"[dim]... {len(games) - limit} more[/dim]")


def show_status(message: str, is_success: bool = True):
    style = "green" if is_success else "red"
    return Panel.fit(f"[{style}]{message}[/{style}]", title="Status")


# ---------------------------
# API wrapper
# ---------------------------
def try_api(fn, *args, success_msg: Optional[str] = None, **kwargs):
    """
    Calls fn(*args, **kwargs) behind a spinner.
    Errors are shown in the status panel and turn into None.
    """
    global status_message
    try:
        with Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            transient=True,
        ) as progress:
            progress.add_task(description="Processing...", total=None)
            result = fn(*args, **kwargs)

        if success_msg:
            status_message = success_msg
            console.print(show_status(success_msg, True))
        return result
    except Exception as e:
        status_message = f"Error: {e}"
        console.print(show_status(f"Error: {e}", False))
        return None


# ---------------------------
# Autocompletion helpers
# ---------------------------
def get_product_completer():
    global product_cache
    if not product_cache:
        product_cache = try_api(c.list_products) or []
    return WordCompleter([p["id"] for p in product_cache if p.get("id")], ignore_case=True)


def get_user_completer():
    global user_cache
    if not user_cache:
        user_cache = try_api(c.list_users) or []
    return WordCompleter([u["id"] for u in user_cache if u.get("id")], ignore_case=True)


def create_header():
    header = Table(show_header=False, box=box.ROUNDED)
    header.add_column("left", width=30)
    header.add_column("center", width=40)
    header.add_column("right", width=30)

    now = datetime.now().strftime("%Y-%m-%d %H:%M:%S")
    header.add_row(
        "🛍️ rest-store",
        "[bold blue]Store API CLI with Autocomplete[/bold blue]",
        f"[dim]{now}[/dim]"
    )
    return Panel(header, style="bold blue")


def prompt_with_autocomplete(message: str, completer=None, default: str = ""):
    return prompt(f"{message} ", completer=completer, style=custom_style, default=default)


def ask_float(message: str, default: float = 10.0) -> float:
    while True:
        raw = Prompt.ask(message, default=str(default))
        try:
            return float(raw)
        except ValueError:
            console.print("[red]Please enter a valid number.[/red]")


# ---------------------------
# Main menu
# ---------------------------
def menu():
    global status_message, product_cache, user_cache

    console.clear()
    console.print(create_header())
    product_cache = try_api(c.list_products) or []

    while True:
        if status_message:
            console.print(show_status(status_message, "Error" not in status_message))

        menu_table = Table.grid(padding=(0, 2))
        menu_table.add_column("Key", style="bold cyan", width=4)
        menu_table.add_column("Option", width=30)
        menu_table.add_column("Key", style="bold cyan", width=4)
        menu_table.add_column("Option", width=30)

        options = [
            ("1", "📦 List products", "6", "👥 List users"),
            ("2", "🔍 Search products", "7", "🧾 Create order"),
            ("3", "➕ Create product", "8", "📋 List orders"),
            ("4", "ℹ️ Get product by ID", "9", "🏷️ List categories"),
            ("5", "👤 Create user", "10", "🎮 Browse games"),
            ("", "", "d", "🗑️ Delete product"),
            ("", "", "q", "👋 Quit")
        ]
        for row in options:
            menu_table.add_row(*row)
        console.print(Panel(menu_table, title="📋 Menu", border_style="yellow"))

        choice = prompt_with_autocomplete(
            "\nChoose an option",
            completer=WordCompleter([str(i) for i in range(1, 11)] + ["d", "q", "quit", "exit"])
        ).strip()

        if choice == "1":
            products = try_api(c.list_products, success_msg="Products loaded successfully")
            if products is not None:
                product_cache = products
                show_products(products)

        elif choice == "2":
            term = prompt_with_autocomplete("Name contains")
            max_price = Prompt.ask("Max price (blank for none)", default="")
            price = float(max_price) if max_price.strip() else None
            res = try_api(c.list_products, term or None, None, price, success_msg=f"Search for '{term}' completed")
            if res is not None:
                show_products(res, title=f"🔍 Results for '{term}'")

        elif choice == "3":
            name = prompt_with_autocomplete("Enter product name")
            about = prompt_with_autocomplete("Describe it")
            price = ask_float("💰 Price", default=10.0)
            resp = try_api(c.create_product, name, about, price, success_msg=f"Product '{name}' created")
            if resp:
                show_products([resp])
                product_cache = try_api(c.list_products) or []

        elif choice == "4":
            pid = prompt_with_autocomplete("Enter product ID", completer=get_product_completer())
            resp = try_api(c.get_product, pid)
            if resp:
                show_products([resp])
            else:
                console.print(show_status(f"Product {pid} not found", False))

        elif choice == "5":
            username = prompt_with_autocomplete("Username")
            email = prompt_with_autocomplete("Email")
            password = prompt("Password ", is_password=True)
            resp = try_api(c.create_user, username, password, email, success_msg=f"User '{username}' created")
            if resp:
                show_users([resp])
                user_cache = []

        elif choice == "6":
            users = try_api(c.list_users, success_msg="Users loaded")
            if users is not None:
                user_cache = users
                show_users(users)

        elif choice == "7":
            uid = prompt_with_autocomplete("Customer ID", completer=get_user_completer())
            raw = prompt_with_autocomplete("Product IDs (space separated)", completer=get_product_completer())
            pay = Confirm.ask("Paid already?")
            resp = try_api(c.create_order, uid, raw.split(), pay, success_msg="Order created")
            if resp:
                show_orders([resp])

        elif choice == "8":
            orders = try_api(c.list_orders, success_msg="Orders loaded")
            if orders is not None:
                show_orders(orders)

        elif choice == "9":
            categories = try_api(c.list_categories, success_msg="Categories loaded")
            if categories is not None:
                for cat in categories:
                    console.print(f"🏷️  [bold]{cat['name']}[/bold] [dim]{cat['id']}[/dim]")

        elif choice == "10":
            games = try_api(c.list_games, success_msg="Games loaded")
            if games is not None:
                show_games(games)

        elif choice == "d":
            pid = prompt_with_autocomplete("Product ID to delete", completer=get_product_completer())
            if Confirm.ask(f"[red]Delete product {pid}?[/red]"):
                resp = try_api(c.delete_product, pid, success_msg=f"Product {pid} deleted")
                if resp:
                    product_cache = try_api(c.list_products) or []

        elif choice.lower() in ("q", "quit", "exit"):
            if Confirm.ask("Are you sure you want to quit?"):
                console.print(Panel.fit("[bold green]Bye! 👋[/bold green]", title="Goodbye"))
                sys.exit(0)

        console.print()
        console.rule(style="dim")


if __name__ == "__main__":
    try:
        menu()
    except KeyboardInterrupt:
        console.print("\n\n[bold red]Interrupted by user[/bold red]")
        sys.exit(1)
