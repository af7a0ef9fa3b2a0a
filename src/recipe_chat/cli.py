"""Terminal chat front end for the recipe chat server."""

from __future__ import annotations

import argparse
import logging
from typing import Callable, List

from .client import HttpChatGateway
from .config import load_config
from .controller import ChatController
from .segments import format_usage, render_segments, segment
from .store import STORAGE_KEY, open_store
from .types import UIMessage

PROMPT = "you> "
HELP = "Type what you feel like eating. /clear resets the conversation, /quit exits."


def render_message(message: UIMessage) -> List[str]:
    if message.role != "assistant":
        return [f"{message.role}: {message.content}"]
    lines = ["assistant:"] + [f"  {line}" for line in render_segments(segment(message.content))]
    footer = format_usage(message.usage)
    if footer:
        lines.append(f"  [{footer}]")
    return lines


def print_messages(messages: List[UIMessage], out: Callable[[str], None] = print) -> None:
    for m in messages:
        for line in render_message(m):
            out(line)


def run_repl(controller: ChatController, read: Callable[[str], str] = input,
             out: Callable[[str], None] = print) -> None:
    print_messages(controller.hydrate(), out)
    out(HELP)
    while True:
        hint = f" (retry: {controller.input_text})" if controller.input_text else ""
        try:
            line = read(PROMPT if not hint else f"{hint.strip()}\n{PROMPT}")
        except (EOFError, KeyboardInterrupt):
            out("")
            return
        cmd = line.strip()
        if cmd in {"/quit", "/exit"}:
            return
        if cmd == "/clear":
            print_messages(controller.clear(), out)
            continue
        # Blank line resubmits the restored input after a failed turn.
        cmd = cmd or controller.input_text
        if not cmd:
            continue
        before = len(controller.conversation)
        conversation = controller.submit(cmd)
        if controller.error:
            out(f"! {controller.error}")
        else:
            print_messages(conversation[before + 1:], out)


def main() -> None:
    parser = argparse.ArgumentParser(description="Chat with the recipe assistant.")
    parser.add_argument("--config", type=str, default=None, help="Path to a YAML config file")
    parser.add_argument("--url", type=str, default=None, help="Chat server base URL")
    parser.add_argument("--data-dir", type=str, default=None, help="Where to keep conversation history")
    parser.add_argument("-v", "--verbose", action="store_true", help="Log debug output")
    args = parser.parse_args()

    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.WARNING)

    cfg = load_config(args.config)
    client_cfg = cfg.get("client", {})
    store = open_store(
        args.data_dir or client_cfg.get("data_dir", "data"),
        key=client_cfg.get("storage_key", STORAGE_KEY),
        welcome_message=client_cfg.get("welcome_message"),
    )
    base_url = args.url or client_cfg.get("base_url", "http://127.0.0.1:8000")
    with HttpChatGateway(base_url, timeout=float(client_cfg.get("timeout", 120.0))) as gateway:
        run_repl(ChatController(store, gateway))


if __name__ == "__main__":
    main()
