#!/usr/bin/env python
# -*- coding: utf-8 -*-
# run.py
# Command-line entry point for knowledge-first packet generation

"""
Script Description:
Thin CLI over PacketAssembler. Builds a PacketGenConfig from the arguments, runs one
request and prints a summary. Exits with status 1 on any PacketGenerationError.

Usage:

1. Full packet (written to <output-dir>/<run-id>/packets/<name>.json):
   python run.py packet --topic "Photosynthesis" --count 5

2. Full packet with context, tossups only:
   python run.py packet --topic "Impressionism" --context "focus on lesser-known painters" --no-bonuses

3. Single tossup / single bonus (printed, not persisted):
   python run.py tossup --topic "Baroque music"
   python run.py bonus --topic "Baroque music"

4. Offline smoke run (no API key needed):
   python run.py packet --topic "Photosynthesis" --count 3 --preset dummy
"""

import argparse
import json
import logging
import sys
from datetime import datetime

from packetgen.generation.pipeline.packet_assembler import PacketAssembler
from packetgen.shared.api_config import GENERATOR_PRESET, available_presets
from packetgen.shared.config import (
    DEFAULT_TOSSUP_COUNT,
    MAX_TOSSUP_COUNT,
    MIN_TOSSUP_COUNT,
    CycleConfig,
    LLMRuntimeConfig,
    create_default_config,
)
from packetgen.shared.llm_interface import clear_retry_audit, get_retry_audit, set_network_config
from packetgen.shared.schemas import PacketGenerationError

logger = logging.getLogger("packetgen.run")


# ============================================================================
# Command-line argument parsing
# ============================================================================

def parse_arguments(argv=None):
    """Parse command-line arguments"""
    parser = argparse.ArgumentParser(
        description="Knowledge-first quizbowl packet generator",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python run.py packet --topic "Photosynthesis" --count 5
  python run.py packet --topic "Impressionism" --context "avoid Monet and Renoir" --bonus-count 2
  python run.py tossup --topic "Baroque music" --preset deepseek_official
  python run.py packet --topic "Photosynthesis" --count 3 --preset dummy
        """
    )

    # ========== Request ==========
    parser.add_argument(
        "mode",
        choices=["packet", "tossup", "bonus"],
        help="packet (full packet, persisted) / tossup (single tossup) / bonus (single bonus)"
    )
    parser.add_argument("--topic", "-t", type=str, required=True, help="Packet topic")
    parser.add_argument("--context", "-c", type=str, default="", help="Additional context or constraints")
    parser.add_argument(
        "--count", "-n",
        type=int,
        default=DEFAULT_TOSSUP_COUNT,
        help=f"Number of tossups ({MIN_TOSSUP_COUNT}-{MAX_TOSSUP_COUNT}), default: {DEFAULT_TOSSUP_COUNT}"
    )
    parser.add_argument("--no-bonuses", action="store_true", help="Skip bonus generation")
    parser.add_argument(
        "--bonus-count",
        type=int,
        default=None,
        help="Number of bonuses, default: same as --count"
    )

    # ========== Model configuration ==========
    parser.add_argument(
        "--preset",
        type=str,
        choices=available_presets(),
        default=None,
        help=f"API preset, default: {GENERATOR_PRESET} (PACKETGEN_PRESET)"
    )
    parser.add_argument("--model", type=str, default=None, help="Model name, default: preset model (PACKETGEN_MODEL)")
    parser.add_argument(
        "--api-type",
        type=str,
        choices=["openai", "google_genai", "dummy"],
        default=None,
        help="Override the preset's backend type"
    )
    parser.add_argument("--temperature", type=float, default=None, help="Sampling temperature")
    parser.add_argument("--top-p", type=float, default=None, help="Nucleus sampling top_p")

    # ========== Run ==========
    parser.add_argument("--seed", type=int, default=None, help="Seed for cycle-resolution picks")
    parser.add_argument("--output-dir", "-o", type=str, default="outputs", help="Output root, default: outputs")
    parser.add_argument("--run-id", type=str, default=None, help="Run folder name, default: timestamp")
    parser.add_argument(
        "--no-network-wait",
        action="store_true",
        help="Treat network errors as ordinary failed attempts (no backoff waits)"
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="DEBUG logging")

    return parser.parse_args(argv)


def build_config(args: argparse.Namespace):
    run_id = args.run_id or f"RUN_{datetime.now().strftime('%Y%m%d_%H%M%S')}"
    config = create_default_config(run_id, output_root=args.output_dir)
    config.target_tossup_count = args.count
    config.generate_bonuses = not args.no_bonuses
    config.bonus_count = args.bonus_count
    config.llm = LLMRuntimeConfig(
        preset=args.preset,
        api_type=args.api_type,
        model_name=args.model,
        temperature=args.temperature,
        top_p=args.top_p,
        verbose=args.verbose,
    )
    config.cycles = CycleConfig(seed=args.seed)
    return config


# ============================================================================
# Summary output
# ============================================================================

def _print_packet(packet) -> None:
    print("\n" + "=" * 80)
    print(packet.name)
    print("=" * 80)
    for i, tossup in enumerate(packet.tossups, start=1):
        print(f"\n{i}. {tossup.question_text}\n   {tossup.answer_text}")
    for i, bonus in enumerate(packet.bonuses, start=1):
        print(f"\nBonus {i}. {bonus.preamble}")
        for label, part in zip("ABC", bonus.parts):
            print(f"  [{label}] {part.question_text}\n      {part.answer_text}")


def _print_retry_audit() -> None:
    audit = get_retry_audit()
    if not audit.has_issues():
        return
    summary = audit.get_summary()
    print(f"\n[LLMClient] retries: {summary['total_retries']}, failures: {summary['total_failures']}")


def main(argv=None) -> int:
    args = parse_arguments(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    clear_retry_audit()
    if args.no_network_wait:
        set_network_config(enabled=False)

    config = build_config(args)
    print("\n" + "=" * 80)
    print("Packet generation")
    print("=" * 80)
    print(f"  Mode:       {args.mode}")
    print(f"  Topic:      {args.topic}")
    if args.context:
        print(f"  Context:    {args.context}")
    print(f"  Model:      {config.llm.api_type}/{config.llm.model_name}")
    print(f"  Output dir: {config.output_dir}")

    try:
        assembler = PacketAssembler(config)
        if args.mode == "packet":
            packet = assembler.generate_packet(args.topic, args.context)
            _print_packet(packet)
            store = assembler.packet_store
            if store is not None and getattr(store, "last_path", None):
                print(f"\n[SUCCESS] Packet saved to: {store.last_path}")
        elif args.mode == "tossup":
            tossup = assembler.generate_tossup(args.topic, args.context)
            print(json.dumps(tossup.to_dict(), ensure_ascii=False, indent=2))
        else:
            bonus = assembler.generate_bonus(args.topic, args.context)
            print(json.dumps(bonus.to_dict(), ensure_ascii=False, indent=2))
    except PacketGenerationError as e:
        logger.error(f"[run] {type(e).__name__}: {e}")
        _print_retry_audit()
        return 1
    except ValueError as e:
        # LLMClient construction (missing API key, unknown backend)
        logger.error(f"[run] Configuration error: {e}")
        return 1

    _print_retry_audit()
    return 0


if __name__ == "__main__":
    sys.exit(main())
