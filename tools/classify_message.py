"""Classify a customer message with the triage rules and print the result.

Usage:
    python tools/classify_message.py "至急返金してください"
    echo "ありがとうございます" | python tools/classify_message.py
    python tools/classify_message.py --rules rules.json "..."
"""

import argparse
import json
import sys

from support_inbox.triage import MessageClassifier, load_rules


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    parser.add_argument("text", nargs="*", help="Message text; read from stdin when omitted")
    parser.add_argument("--rules", help="Path to a JSON file with custom triage rules")
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    text = " ".join(args.text) if args.text else sys.stdin.read()
    classifier = MessageClassifier(load_rules(args.rules))
    result = classifier.classify(text.strip())
    sys.stdout.write(json.dumps(result.to_dict(), ensure_ascii=False, indent=2) + "\n")
    return 0


if __name__ == "__main__":
    sys.exit(main())
