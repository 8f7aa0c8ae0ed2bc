import argparse
import sys
from typing import List, Optional

from archeohub.client import ArcheoHubClient
from archeohub.schemas import ChatOptions


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Ask ArcheoHub a question.")
    parser.add_argument("query", help="question to ask")
    parser.add_argument("--base-url", default=None, help="API base URL (default: $ARCHEOHUB_API_URL)")
    parser.add_argument("--no-sources", action="store_true", help="skip the web search step")
    parser.add_argument("--tone", default=None)
    parser.add_argument("--depth", choices=["brief", "standard", "detailed"], default=None)
    parser.add_argument("--persona", default=None)
    parser.add_argument("--attempts", type=int, default=3, help="tries on network errors")
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    client = ArcheoHubClient(base_url=args.base_url, max_attempts=args.attempts)
    options = ChatOptions(
        persona=args.persona,
        tone=args.tone,
        depth=args.depth,
        include_sources=not args.no_sources,
    )

    reply = client.ask_or_error(args.query, options)
    if reply.error:
        print(f"Error: {reply.text}", file=sys.stderr)
        return 1

    print(reply.text)
    if reply.sources:
        print("\nSources:")
        for i, s in enumerate(reply.sources, start=1):
            print(f"  [{i}] {s.title or s.url} - {s.url}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
