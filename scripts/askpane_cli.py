#!/usr/bin/env python3
"""Talk to a running askpane server from the terminal.

Usage examples:
    # Ask about some text, streaming the answer
    uv run python scripts/askpane_cli.py ask "What does TTL mean?" --context-file page.txt

    # Follow-up in the same conversation
    uv run python scripts/askpane_cli.py ask "And how is it set?" --follow-up

    # Save, list and delete memories
    uv run python scripts/askpane_cli.py save "The staging DB is db-stg-2" --url https://wiki/x
    uv run python scripts/askpane_cli.py list
    uv run python scripts/askpane_cli.py delete 1760900000000
"""

import argparse
import json
import sys
from pathlib import Path

import httpx

# Allow running from project root
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from src.api.server import SECRET_HEADER
from src.config import settings

BASE_URL = f"http://{settings.server_host}:{settings.server_port}"


def _headers() -> dict[str, str]:
    if settings.api_shared_secret:
        return {SECRET_HEADER: settings.api_shared_secret}
    return {}


def _fail(resp: httpx.Response) -> None:
    print(f"ERROR: API returned {resp.status_code}: {resp.text}", file=sys.stderr)
    sys.exit(1)


def ask(question: str, context: str, conversation_id: str, follow_up: bool) -> None:
    payload = {
        "conversation_id": conversation_id,
        "question": question,
        "page_context": context,
        "is_new_search": not follow_up,
    }
    with (
        httpx.Client(timeout=None, headers=_headers()) as client,
        client.stream("POST", f"{BASE_URL}/ask", json=payload) as resp,
    ):
        if resp.status_code != 200:
            resp.read()
            _fail(resp)
        for line in resp.iter_lines():
            if not line.startswith("data: "):
                continue
            event = json.loads(line[len("data: ") :])
            if event["type"] == "delta":
                print(event["text"], end="", flush=True)
            else:
                print()
                if event["type"] == "error":
                    sys.exit(1)


def main() -> None:
    parser = argparse.ArgumentParser(description="askpane command-line client")
    sub = parser.add_subparsers(dest="command", required=True)

    ask_p = sub.add_parser("ask", help="Ask a question and stream the answer")
    ask_p.add_argument("question")
    ask_p.add_argument("--context-file", type=Path, help="File holding the page text")
    ask_p.add_argument("--conversation", default="cli", help="Conversation id (default: cli)")
    ask_p.add_argument("--follow-up", action="store_true", help="Continue the conversation")

    save_p = sub.add_parser("save", help="Save a snippet to memory")
    save_p.add_argument("text")
    save_p.add_argument("--url", default="", help="Where the snippet came from")

    sub.add_parser("list", help="List saved memories")

    delete_p = sub.add_parser("delete", help="Delete a memory by id")
    delete_p.add_argument("memory_id", type=int)

    args = parser.parse_args()

    if args.command == "ask":
        context = args.context_file.read_text(encoding="utf-8") if args.context_file else ""
        ask(args.question, context, args.conversation, args.follow_up)
        return

    with httpx.Client(timeout=30, headers=_headers()) as client:
        if args.command == "save":
            resp = client.post(f"{BASE_URL}/memories", json={"text": args.text, "source_url": args.url})
            if resp.status_code != 201:
                _fail(resp)
            print(f"Saved memory {resp.json()['id']}")
        elif args.command == "list":
            resp = client.get(f"{BASE_URL}/memories")
            if resp.status_code != 200:
                _fail(resp)
            memories = resp.json()["memories"]
            if not memories:
                print("No memories saved.")
                return
            print(f"--- {len(memories)} memories ---\n")
            for memory in memories:
                source = f" ({memory['source_url']})" if memory["source_url"] else ""
                print(f"{memory['id']}  {memory['created_at']}{source}\n    {memory['text']}")
        elif args.command == "delete":
            resp = client.delete(f"{BASE_URL}/memories/{args.memory_id}")
            if resp.status_code != 200:
                _fail(resp)
            print(f"Deleted memory {args.memory_id}")


if __name__ == "__main__":
    main()
