#!/usr/bin/env python3
"""
generate_protocol.py - Generate C encode/decode code and Markdown from a protocol XML file

Usage:
    python generate_protocol.py demo.xml
    python generate_protocol.py demo.xml generated/
    python generate_protocol.py demo.xml generated/ --no-markdown --quiet
    python generate_protocol.py demo.xml --config protogen.yaml

Command line options override the settings of the configuration file.
"""

import argparse
import sys
from pathlib import Path

import yaml

from protocol_parser import GeneratorConfig, ProtocolParser
from schema_helpers import log_info


def build_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description='Generate C encode/decode code and Markdown documentation from a protocol XML file')
    parser.add_argument('input', help='Protocol description (.xml)')
    parser.add_argument('output', nargs='?', help='Output directory (default: configuration or current directory)')
    parser.add_argument('-c', '--config', help='YAML generation settings')
    parser.add_argument('--no-markdown', '-no-markdown', dest='no_markdown', action='store_true',
                        help='Do not write the Markdown documentation')
    parser.add_argument('--little-endian', dest='little_endian', action='store_true',
                        help='Encode multi-byte fields least significant byte first')
    parser.add_argument('-q', '--quiet', action='store_true', help='Do not print warnings')
    return parser


def main(argv=None) -> int:
    args = build_arg_parser().parse_args(argv)

    try:
        config = GeneratorConfig.from_yaml(args.config) if args.config else GeneratorConfig()
    except (OSError, ValueError, yaml.YAMLError) as e:
        print(f"Error: {args.config}: {e}", file=sys.stderr)
        return 1

    if args.output:
        config.output_dir = args.output
    if args.no_markdown:
        config.markdown = False
    if args.little_endian:
        config.big_endian = False
    if args.quiet:
        config.quiet = True

    input_path = Path(args.input)
    if not input_path.is_file():
        print(f"Error: failed to open protocol file: {input_path}", file=sys.stderr)
        return 1

    try:
        result = ProtocolParser(config).parse_file(input_path)
    except (OSError, ValueError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    log_info(f"{result.protocol_name}: {len(result.packets)} packets, "
             f"{len(result.structures)} structures, {len(result.warnings)} warnings")
    return 0


if __name__ == '__main__':
    sys.exit(main())
