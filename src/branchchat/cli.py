"""Command-line interface for branching conversations."""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

from .agent_client import ChatClient
from .condense import Condenser, search_outline
from .config import ChatConfig
from .errors import BranchChatError, format_error_for_user
from .exporters import Exporter, JsonExporter, YamlExporter
from .registry import ConversationRegistry
from .session import ChatSession
from .storage import RegistryStore
from .tree import TreeNode

LOGGER = logging.getLogger(__name__)

EXPORTERS: dict[str, type[Exporter]] = {"json": JsonExporter, "yaml": YamlExporter}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Branching conversations with an LLM")
    parser.add_argument("--db", default="data/branchchat.db", help="SQLite database path")
    parser.add_argument("--agent-url", default="http://localhost:8080", help="Completion server base URL")
    parser.add_argument("--model", default=None, help="Model name sent with each request")
    parser.add_argument("--timeout", type=int, default=30, help="Request timeout in seconds")
    parser.add_argument("--max-tokens", type=int, default=1000, help="Reply generation budget")
    parser.add_argument("--temperature", type=float, default=0.7, help="Sampling temperature")
    parser.add_argument("--verbose", "-v", action="store_true", help="Log at DEBUG level")
    subparsers = parser.add_subparsers(dest="command", required=True)

    new_parser = subparsers.add_parser("new", help="Start a new conversation")
    new_parser.add_argument("title", nargs="?", default=None, help="Conversation title")

    subparsers.add_parser("list", help="List conversations")

    select_parser = subparsers.add_parser("select", help="Focus another conversation")
    select_parser.add_argument("conversation_id")

    say_parser = subparsers.add_parser("say", help="Send a message on the focused branch")
    say_parser.add_argument("text")

    branch_parser = subparsers.add_parser("branch", help="Fork from a message")
    branch_parser.add_argument("message_id")
    branch_parser.add_argument("--title", default=None, help="Branch title (generated if omitted)")
    branch_parser.add_argument("--selected", default=None, help="Selected text to name the branch from")

    for name, help_text in (
        ("switch", "Focus a branch"),
        ("close", "Hide a branch from the tree"),
        ("delete-branch", "Delete a branch and its descendants"),
    ):
        sub = subparsers.add_parser(name, help=help_text)
        sub.add_argument("branch_id")

    subparsers.add_parser("show", help="Print the focused branch")
    subparsers.add_parser("tree", help="Print the branch tree")
    subparsers.add_parser("starred", help="List starred messages")

    star_parser = subparsers.add_parser("star", help="Toggle the star on a message")
    star_parser.add_argument("message_id")

    jump_parser = subparsers.add_parser("jump", help="Focus the branch holding a message")
    jump_parser.add_argument("message_id")

    condense_parser = subparsers.add_parser("condense", help="Print the condensed outline")
    condense_parser.add_argument("--refresh", action="store_true", help="Regenerate even if cached")
    condense_parser.add_argument("--search", default=None, help="Filter outline titles")

    export_parser = subparsers.add_parser("export", help="Export conversations")
    export_parser.add_argument("path")
    export_parser.add_argument("--format", choices=sorted(EXPORTERS), default="json")

    return parser


def config_from_args(args: argparse.Namespace) -> ChatConfig:
    config = ChatConfig(
        db_path=Path(args.db),
        agent_url=args.agent_url,
        model=args.model,
        timeout=args.timeout,
        max_tokens=args.max_tokens,
        temperature=args.temperature,
    )
    config.validate()
    return config


def make_client(config: ChatConfig) -> ChatClient:
    return ChatClient(
        base_url=config.agent_url,
        timeout=config.timeout,
        max_retries=config.max_retries,
        model=config.model,
        temperature=config.temperature,
        name_max_tokens=config.name_max_tokens,
        condense_max_tokens=config.condense_max_tokens,
    )


def render_tree(node: TreeNode, depth: int = 0) -> list[str]:
    marker = "*" if node.is_active else " "
    lines = [f"{'  ' * depth}{marker} {node.title} [{node.id}]"]
    for child in node.children:
        lines.extend(render_tree(child, depth + 1))
    return lines


def run(args: argparse.Namespace, config: ChatConfig, registry: ConversationRegistry) -> None:
    command = args.command

    if command == "new":
        conversation = registry.create_conversation(args.title or config.default_title)
        print(conversation.id)
    elif command == "list":
        for conversation in registry.conversations.values():
            marker = "*" if conversation.id == registry.current_conversation_id else " "
            print(f"{marker} {conversation.id}  {conversation.title}")
    elif command == "select":
        if not registry.select_conversation(args.conversation_id):
            raise SystemExit(f"Unknown conversation {args.conversation_id}")
    elif command == "say":
        session = ChatSession(registry, make_client(config), config=config)
        reply = session.send(args.text)
        print(f"[{reply.id}] {reply.content}")
    elif command == "branch":
        session = ChatSession(registry, make_client(config), config=config)
        branch = session.branch_from(args.message_id, args.selected, args.title)
        print(f"{branch.id}  {branch.title}")
    elif command == "switch":
        if not registry.switch_branch(args.branch_id):
            raise SystemExit(f"Unknown branch {args.branch_id}")
    elif command == "close":
        if not registry.close_branch(args.branch_id):
            raise SystemExit(f"Cannot close branch {args.branch_id}")
    elif command == "delete-branch":
        if not registry.delete_branch(args.branch_id):
            raise SystemExit(f"Cannot delete branch {args.branch_id}")
    elif command == "show":
        print(" > ".join(registry.get_breadcrumbs()))
        branch = registry.get_current_branch()
        for message in branch.messages if branch else []:
            star = "*" if message.starred else " "
            print(f"{star} [{message.id}] {message.sender.value}: {message.content}")
    elif command == "tree":
        node = registry.get_tree()
        if node is not None:
            print("\n".join(render_tree(node)))
    elif command == "starred":
        for item in registry.list_starred():
            print(
                f"[{item.message.id}] {item.conversation_title} / {item.branch_title}: "
                f"{item.message.content}"
            )
    elif command == "star":
        starred = registry.toggle_star(args.message_id)
        print("starred" if starred else "unstarred")
    elif command == "jump":
        location = registry.jump_to_message(args.message_id)
        if location is None:
            raise SystemExit(f"Message {args.message_id} not found")
        print(f"{location.branch_id}  {location.branch_title}")
    elif command == "condense":
        log = Condenser(registry, make_client(config)).get_condensed_log(
            force_refresh=args.refresh
        )
        if log.error_message:
            LOGGER.warning("Outline fallback: %s", log.error_message)
        items = search_outline(log.items, args.search) if args.search else log.items
        for item in items:
            print(f"- {item.title} [{item.source_message_id}]")
            for child in item.children:
                print(f"    - {child.title} [{child.source_message_id}]")
    elif command == "export":
        exporter = EXPORTERS[args.format]()
        count = exporter.export(registry.conversations.values(), Path(args.path))
        LOGGER.info("Exported %d conversations to %s", count, args.path)
    else:
        raise SystemExit(f"Unknown command {command}")


def main(argv: list[str] | None = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(message)s",
    )

    try:
        config = config_from_args(args)
    except ValueError as exc:
        parser.error(str(exc))

    config.db_path.parent.mkdir(parents=True, exist_ok=True)
    store = RegistryStore.open(config.db_path, key=config.storage_key)
    try:
        registry = ConversationRegistry.open(store, config.default_title)
        run(args, config, registry)
    except BranchChatError as exc:
        LOGGER.debug("Command failed", exc_info=True)
        print(format_error_for_user(exc), file=sys.stderr)
        raise SystemExit(1) from exc
    finally:
        store.close()


if __name__ == "__main__":
    main()
