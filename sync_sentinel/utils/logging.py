from rich.console import Console
from rich.markup import escape

console = Console(highlight=False)

# Level tag -> style. EVENT marks actions taken on the network (switch closed).
LEVELS = {
    "INFO": "bold cyan",
    "WARN": "bold yellow",
    "ERROR": "bold red",
    "EVENT": "bold green",
}


def _emit(level: str, msg: str) -> None:
    # Switch and bus names are user data; keep their brackets literal
    style = LEVELS[level]
    console.print(f"[{style}]{level}[/{style}] {escape(msg)}")

def info(msg: str) -> None:
    _emit("INFO", msg)

def warn(msg: str) -> None:
    _emit("WARN", msg)

def error(msg: str) -> None:
    _emit("ERROR", msg)

def event(msg: str) -> None:
    _emit("EVENT", msg)
