"""Command-line front end: ``python -m link2ref.cli [OPTIONS] [INPUT ...]``.

Inputs come from the arguments, or one per line on stdin when none are given.
"""

import argparse
import contextlib
import json
import logging
import sys

from link2ref.config import Config
from link2ref.formatters import OUTPUT_FORMATS
from link2ref.resolver import parse_links


# ANSI color codes for terminal output
class Colors:
    RED = '\033[91m'
    GREEN = '\033[92m'
    YELLOW = '\033[93m'
    CYAN = '\033[96m'
    BOLD = '\033[1m'
    DIM = '\033[2m'
    RESET = '\033[0m'

    @classmethod
    def disable(cls):
        """Disable all colors by setting them to empty strings."""
        cls.RED = ''
        cls.GREEN = ''
        cls.YELLOW = ''
        cls.CYAN = ''
        cls.BOLD = ''
        cls.DIM = ''
        cls.RESET = ''


def build_parser():
    parser = argparse.ArgumentParser(
        prog='link2ref',
        description='Turn URLs, DOIs and arXiv links into bibliographic references.',
    )
    parser.add_argument('inputs', nargs='*', help='URLs, DOIs or arXiv links (default: read stdin)')
    parser.add_argument('--format', '-f', default=None, choices=sorted(OUTPUT_FORMATS.values()),
                        help='Output style (default: LINK2REF_DEFAULT_STYLE or csl_json)')
    parser.add_argument('--output', '-o', default=None, help='Write output to file')
    parser.add_argument('--no-color', action='store_true', help='Disable colored output')
    parser.add_argument('--verbose', '-v', action='store_true', help='Log every strategy attempt')
    return parser


def cli_progress(event_type, data):
    idx = data['index'] + 1
    total = data['total']
    if event_type == 'checking':
        short = data['input'][:60] + '...' if len(data['input']) > 60 else data['input']
        print(f"[{idx}/{total}] Resolving: {short}")
    elif event_type == 'result':
        outcome = data['outcome']
        if outcome['ok']:
            title = outcome['csl'].get('title', '')[:50]
            print(f"[{idx}/{total}] -> {Colors.GREEN}{outcome['strategy'].upper()}{Colors.RESET} {title}")
        else:
            print(f"[{idx}/{total}] -> {Colors.RED}FAILED{Colors.RESET} {outcome['error']}")


def print_report(report):
    print()
    if report['output_type'] == 'json':
        print(json.dumps(report['output'], indent=2, ensure_ascii=False))
    else:
        for entry in report['output']:
            if entry is not None:
                print(entry)

    failures = [r for r in report['results'] if not r['ok']]
    if failures:
        print()
        print(f"{Colors.RED}{Colors.BOLD}FAILED INPUTS{Colors.RESET}")
        for failure in failures:
            print(f"  {failure['input']}")
            print(f"    {Colors.DIM}{failure['error']}{Colors.RESET}")

    print()
    print(f"{Colors.BOLD}{'='*60}{Colors.RESET}")
    print(f"{Colors.BOLD}SUMMARY{Colors.RESET}")
    print(f"{Colors.BOLD}{'='*60}{Colors.RESET}")
    print(f"  Inputs: {report['total']}")
    print(f"  {Colors.GREEN}Resolved:{Colors.RESET} {report['success']}")
    if report['failed'] > 0:
        print(f"  {Colors.RED}Failed:{Colors.RESET} {report['failed']}")
    if report['cancelled']:
        print(f"  {Colors.YELLOW}Cancelled before completion{Colors.RESET}")
    print()


def run(inputs, style, config):
    print(f"Resolving {len(inputs)} input(s)...")
    report = parse_links(inputs, style=style, config=config, on_progress=cli_progress)
    print_report(report)
    return report


def main(argv=None):
    args = build_parser().parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format='%(asctime)s [%(levelname)s] %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S',
    )
    if args.no_color:
        Colors.disable()

    inputs = args.inputs or [line for line in sys.stdin.read().splitlines() if line.strip()]
    if not inputs:
        print("Usage: python -m link2ref.cli [OPTIONS] <input> [<input> ...]")
        return 1

    config = Config.from_env()
    if args.output:
        Colors.disable()
        with open(args.output, "w", encoding="utf-8") as f, contextlib.redirect_stdout(f):
            report = run(inputs, args.format, config)
    else:
        report = run(inputs, args.format, config)

    return 0 if report['success'] else 1


if __name__ == "__main__":
    sys.exit(main())
