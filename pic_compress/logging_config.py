import logging
from pathlib import Path
from typing import List, Optional


def logger_formatter() -> logging.Formatter:
    formatter = logging.Formatter(
        "%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%d-%m-%Y %I:%M:%S %p",
    )
    return formatter


def handler_stream(formatter: logging.Formatter, level: int) -> logging.StreamHandler:
    console_handler = logging.StreamHandler()
    console_handler.setLevel(level)
    console_handler.setFormatter(formatter)
    return console_handler


def handler_file(path: str, formatter: logging.Formatter) -> logging.FileHandler:
    Path(path).parent.mkdir(parents=True, exist_ok=True)
    file_handler = logging.FileHandler(path, encoding="utf-8")
    file_handler.setLevel(logging.DEBUG)
    file_handler.setFormatter(formatter)
    return file_handler


def setup_logging(debug: bool = False, path: Optional[str] = None) -> None:
    formatter = logger_formatter()
    handlers: List[logging.Handler] = [
        handler_stream(formatter, logging.DEBUG if debug else logging.WARNING)
    ]
    if path:
        handlers.append(handler_file(path, formatter))

    logging.basicConfig(level=logging.DEBUG, handlers=handlers, force=True)

    # Pillow logs every plugin it loads at DEBUG
    logging.getLogger("PIL").setLevel(logging.WARNING)
