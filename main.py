#!/usr/bin/env python3
"""Entry point for the iterative prompt-to-image refiner.

Usage:
    # Run with Gradio UI
    python main.py ui

    # Run CLI generation
    python main.py generate "a jumping frog"

    # Follow the second improvement direction for three rounds, emoji mode
    python main.py generate "prompt" --mode emoji --rounds 3 --direction 1
"""

import argparse
import asyncio
import logging
import sys

import config


def run_ui(share: bool = False, port: int = 7860):
    """Launch the Gradio UI."""
    from ui.app import main as launch_ui
    launch_ui(share=share, port=port)


def print_iteration(iteration) -> None:
    """Print a finished iteration."""
    print(f"[Iteration {iteration.number}] {iteration.status.value}")
    print(f"  Prompt: {iteration.prompt}")
    if iteration.image_url:
        print(f"  Image: {iteration.image_url}")
    if iteration.error:
        print(f"  Error: {iteration.error}")

    analysis = iteration.analysis
    if analysis:
        print(f"  Optimal: {'yes' if analysis.is_optimal else 'no'}")
        print(f"  Analysis: {analysis.description}")
        for index, direction in enumerate(analysis.improvement_directions):
            print(f"    [{index}] {direction.title}: {direction.description}")
    print()


async def refine(args: argparse.Namespace) -> int:
    """Run one session: the initial attempt plus ``args.rounds`` improvements."""
    from image_refiner.engine import RefinementEngine
    from image_refiner.exceptions import RefinementError

    engine = RefinementEngine(output_mode=args.mode)
    try:
        try:
            state = await engine.start_refinement(args.prompt)
        except RefinementError:
            if engine.state.latest:
                print_iteration(engine.state.latest)
            print(f"Error: {engine.state.error}")
            return 1
        print_iteration(state.latest)

        for _ in range(args.rounds):
            latest = state.latest
            if latest.analysis.is_optimal:
                print("Critic marked the image optimal, stopping.")
                break

            directions = latest.analysis.improvement_directions
            index = min(args.direction, len(directions) - 1)
            try:
                state = await engine.select_improvement(latest.number, index)
            except RefinementError:
                print_iteration(engine.state.latest)
                print(f"Error: {engine.state.error}")
                return 1
            print_iteration(state.latest)
    finally:
        await engine.aclose()

    print(f"{'='*60}")
    print("COMPLETE")
    print(f"{'='*60}")
    print(f"Total iterations: {len(state.iterations)}")
    print(f"Seed: {state.current_seed}")
    print(f"Final image: {state.latest.image_url}")
    return 0


def run_generate(args: argparse.Namespace) -> int:
    """Run the refinement session from CLI."""
    print(f"\n{'='*60}")
    print("Iterative Prompt-to-Image Refiner")
    print(f"{'='*60}\n")
    print(f"Initial prompt: {args.prompt}")
    print(f"Output mode: {args.mode}")
    print(f"Improvement rounds: {args.rounds}")
    print()

    return asyncio.run(refine(args))


def main():
    """Main entry point."""
    logging.basicConfig(
        level=config.LOG_LEVEL,
        format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
    )

    from image_refiner.modes import OUTPUT_MODES

    parser = argparse.ArgumentParser(
        description="Iterative Prompt-to-Image Refiner",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # UI command
    ui_parser = subparsers.add_parser("ui", help="Launch the Gradio web interface")
    ui_parser.add_argument(
        "--share",
        action="store_true",
        help="Create a public URL for remote access",
    )
    ui_parser.add_argument(
        "--port", "-p",
        type=int,
        default=7860,
        help="Port to run the server on (default: 7860)",
    )

    # Generate command
    gen_parser = subparsers.add_parser("generate", help="Refine an image from CLI")
    gen_parser.add_argument(
        "prompt",
        type=str,
        help="The initial prompt for image generation",
    )
    gen_parser.add_argument(
        "--mode", "-m",
        choices=sorted(OUTPUT_MODES),
        default=config.DEFAULT_OUTPUT_MODE,
        help=f"Output mode (default: {config.DEFAULT_OUTPUT_MODE})",
    )
    gen_parser.add_argument(
        "--rounds", "-r",
        type=int,
        default=0,
        help=f"Improvement rounds after the first image (max {config.MAX_ROUNDS})",
    )
    gen_parser.add_argument(
        "--direction", "-d",
        type=int,
        choices=range(3),
        default=0,
        help="Index of the improvement direction to follow each round (default: 0)",
    )

    args = parser.parse_args()

    if args.command == "ui":
        run_ui(share=args.share, port=args.port)
    elif args.command == "generate":
        if not 0 <= args.rounds <= config.MAX_ROUNDS:
            parser.error(f"--rounds must be between 0 and {config.MAX_ROUNDS}")
        sys.exit(run_generate(args))
    else:
        parser.print_help()
        sys.exit(1)


if __name__ == "__main__":
    main()
