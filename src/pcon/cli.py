"""PCON command-line interface with subcommands.

Usage:
    pcon info <project.prproj>
    pcon sequences <project.prproj>
    pcon media <project.prproj>
    pcon analyze <project.prproj> [-s SEQ_ID ...] [--handles N] [--selected-angle-only]
    pcon estimate <project.prproj> -o OUTPUT_DIR [consolidation options]
    pcon consolidate <project.prproj> -o OUTPUT_DIR [consolidation options]
    pcon probe <media-file>
    pcon check-output <dir>
    pcon check-ffmpeg
"""

import argparse
import json
import logging
import sys
import time
from pathlib import Path

from pydantic import ValidationError

from pcon.config import settings
from pcon.engine import ConsolidationEngine
from pcon.errors import PconError
from pcon.jobs.models import ConsolidationProgress, ConsolidationStatus
from pcon.models.options import (
    ConsolidationOptions,
    FolderStructure,
    LosslessFallback,
    OptimizationMode,
    ProcessingMode,
    ProxyMode,
    TranscodePreset,
)
from pcon.services.inventory import format_file_size

POLL_INTERVAL_SECONDS = 0.5


def _print_json(data) -> None:
    print(json.dumps(data, ensure_ascii=False, indent=2, default=str))


def _options_from_args(args: argparse.Namespace) -> ConsolidationOptions:
    return ConsolidationOptions(
        output_path=Path(args.output).resolve(),
        sequences=args.sequence or [],
        processing_mode=ProcessingMode(args.mode),
        transcode_preset=TranscodePreset(args.preset) if args.preset else None,
        optimization_mode=OptimizationMode(args.optimize),
        folder_structure=FolderStructure(args.folders),
        proxy_mode=ProxyMode(args.proxies),
        handle_frames=args.handles,
        include_all_multicam_angles=not args.selected_angle_only,
        generate_unique_filenames=not args.no_unique_names,
        use_project_item_names=args.item_names,
        add_frame_range_to_filename=args.frame_range,
        copy_sidecar_files=not args.no_sidecars,
        skip_offline_media=not args.fail_offline,
        lossless_fallback=LosslessFallback(args.lossless_fallback)
        if args.lossless_fallback
        else None,
    )


# --- Query subcommands ---


def cmd_info(engine: ConsolidationEngine, args: argparse.Namespace) -> None:
    info = engine.get_project_info(args.project)
    if args.json:
        _print_json(info.model_dump())
        return
    print(f"Project: {info.name} (version {info.version})")
    print(f"  Path: {info.file_path}")
    print(f"  Sequences: {info.sequence_count}")
    print(f"  Media: {info.media_count}")
    print(f"  Bins: {info.bin_count}")
    if info.unresolved_count:
        print(f"  Unresolved references: {info.unresolved_count}")


def cmd_sequences(engine: ConsolidationEngine, args: argparse.Namespace) -> None:
    sequences = engine.get_sequences(args.project)
    if args.json:
        _print_json([s.model_dump() for s in sequences])
        return
    for seq in sequences:
        nested = f", {seq.nested_count} nested" if seq.nested_count else ""
        print(
            f"{seq.object_id}  {seq.name}  {seq.duration_seconds:.2f}s @ {seq.frame_rate:g}fps  "
            f"V{seq.video_track_count}/A{seq.audio_track_count}{nested}"
        )


def cmd_media(engine: ConsolidationEngine, args: argparse.Namespace) -> None:
    items = engine.get_media_items(args.project)
    if args.json:
        _print_json([m.model_dump() for m in items])
        return
    for item in items:
        state = "online " if item.is_online else "OFFLINE"
        proxy = " +proxy" if item.has_proxy else ""
        print(
            f"[{state}] {item.file_name}  {item.file_size_formatted}  "
            f"{item.media_type}{proxy}  {item.bin_path or ''}"
        )
    online = sum(1 for m in items if m.is_online)
    print(f"\n{len(items)} media, {online} online, {len(items) - online} offline")


def cmd_analyze(engine: ConsolidationEngine, args: argparse.Namespace) -> None:
    summary = engine.analyze_media_usage(
        args.project,
        sequence_ids=args.sequence or None,
        handle_frames=args.handles,
        include_all_multicam=not args.selected_angle_only,
    )
    if args.json:
        _print_json(summary.model_dump())
        return
    print(f"Used:   {summary.used_count} media, {format_file_size(summary.used_size)}")
    print(f"Unused: {summary.unused_count} media, {format_file_size(summary.unused_size)}")
    for used in summary.used_media:
        start, end = used.time_range_seconds
        print(
            f"  {used.file_name}: {used.usage_count} clip(s), "
            f"{len(used.ranges_seconds)} range(s) within {start:.2f}s-{end:.2f}s"
        )
    for warning in summary.warnings:
        print(f"  warning: {warning}")


def cmd_estimate(engine: ConsolidationEngine, args: argparse.Namespace) -> None:
    size = engine.estimate_output_size(args.project, _options_from_args(args))
    if args.json:
        _print_json({"bytes": size, "formatted": format_file_size(size)})
        return
    print(f"Estimated output size: {format_file_size(size)} ({size} bytes)")


def cmd_probe(engine: ConsolidationEngine, args: argparse.Namespace) -> None:
    meta = engine.get_media_metadata(args.input)
    if args.json:
        _print_json(meta.model_dump())
        return
    info = meta.info
    print(f"{meta.file_path}")
    print(f"  Duration: {info.duration_seconds:.2f}s")
    if info.resolution:
        print(f"  Resolution: {info.resolution} @ {info.fps or 0:g}fps")
    print(f"  Codecs: {', '.join(info.av_codecs) or 'none'}")
    print(f"  Lossless trim: {'yes' if meta.lossless_trimmable else 'no'}")


def cmd_check_output(engine: ConsolidationEngine, args: argparse.Namespace) -> None:
    check = engine.validate_output_path(args.path)
    if args.json:
        _print_json(check.model_dump())
    else:
        state = "ok" if check.is_valid else "not writable"
        print(f"{check.path}: {state}{f' ({check.message})' if check.message else ''}")
    if not check.is_valid:
        sys.exit(1)


def cmd_check_ffmpeg(engine: ConsolidationEngine, args: argparse.Namespace) -> None:
    print(engine.check_ffmpeg())


# --- Consolidate subcommand ---


def _render_progress(progress: ConsolidationProgress) -> None:
    bar_width = 30
    if progress.bytes_total:
        ratio = progress.bytes_processed / progress.bytes_total
    elif progress.files_total:
        ratio = progress.files_processed / progress.files_total
    else:
        ratio = 0.0
    ratio = min(ratio, 1.0)
    filled = int(bar_width * ratio)
    bar = "=" * filled + "-" * (bar_width - filled)
    status = progress.current_operation or progress.status.value
    print(
        f"\r  [{bar}] {ratio*100:.0f}% "
        f"{progress.files_processed}/{progress.files_total} {status[:40]:<40}",
        end="",
        flush=True,
    )


def cmd_consolidate(engine: ConsolidationEngine, args: argparse.Namespace) -> None:
    options = _options_from_args(args)
    check = engine.validate_output_path(options.output_path)
    if not check.is_valid:
        print(f"Error: output path is not writable: {check.path}", file=sys.stderr)
        sys.exit(1)

    job_id = engine.start_consolidation(args.project, options)
    print(f"Consolidation started: {job_id}")
    print(f"  Output: {options.output_path}")

    try:
        while True:
            progress = engine.get_consolidation_progress(job_id)
            _render_progress(progress)
            if progress.status.is_terminal:
                break
            time.sleep(POLL_INTERVAL_SECONDS)
    except KeyboardInterrupt:
        print("\nCancelling...")
        engine.cancel_consolidation(job_id)
        progress = engine.jobs.wait(job_id)
    print()  # newline after progress bar

    for warning in progress.warnings:
        print(f"  warning: {warning}")
    for error in progress.errors:
        kind = "fatal" if error.is_fatal else "error"
        print(f"  {kind}: {error.file_path}: {error.error_message}", file=sys.stderr)

    job = engine.jobs.get_job(job_id)
    if progress.status is ConsolidationStatus.COMPLETED and job.result is not None:
        result = job.result
        print(f"\nDone: {result.output_project_path}")
        print(f"  Files: {progress.files_processed}/{progress.files_total}")
        print(f"  Original: {format_file_size(result.original_size)}")
        print(f"  Output:   {format_file_size(result.final_size)}")
        print(f"  Saved:    {format_file_size(result.bytes_saved)}")
        print(f"  Time:     {result.duration_seconds:.1f}s")
        return

    print(f"\nConsolidation {progress.status.value.lower()}", file=sys.stderr)
    sys.exit(1)


# --- Main CLI ---


def _add_consolidation_options(p: argparse.ArgumentParser) -> None:
    p.add_argument("project", type=str, help="Premiere project file (.prproj)")
    p.add_argument("-o", "--output", type=str, default=str(settings.output_dir), help="Output directory")
    p.add_argument("-s", "--sequence", action="append", help="Sequence id to include (repeatable, default: all)")
    p.add_argument("--mode", choices=[m.value for m in ProcessingMode], default="trim", help="Processing mode (default: trim)")
    p.add_argument("--preset", choices=[t.value for t in TranscodePreset], help="Transcode preset")
    p.add_argument("--optimize", choices=[m.value for m in OptimizationMode], default="keep_files", help="Optimization mode (default: keep_files)")
    p.add_argument("--folders", choices=[f.value for f in FolderStructure], default="flat", help="Folder structure (default: flat)")
    p.add_argument("--proxies", choices=[m.value for m in ProxyMode], default="both", help="Proxy handling (default: both)")
    p.add_argument("--handles", type=int, default=0, help="Handle frames (default: 0)")
    p.add_argument("--selected-angle-only", action="store_true", help="Only keep the selected multicam angle")
    p.add_argument("--no-unique-names", action="store_true", help="Do not generate unique file names")
    p.add_argument("--item-names", action="store_true", help="Name outputs after project items")
    p.add_argument("--frame-range", action="store_true", help="Add the frame range to file names")
    p.add_argument("--no-sidecars", action="store_true", help="Do not copy sidecar files")
    p.add_argument("--fail-offline", action="store_true", help="Treat offline media as errors")
    p.add_argument("--lossless-fallback", choices=[f.value for f in LosslessFallback], help="When stream copy is unsafe")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="pcon",
        description="PCON - Premiere project consolidation CLI",
    )
    parser.add_argument("--json", action="store_true", help="Print machine-readable JSON")
    parser.add_argument("-v", "--verbose", action="store_true", help="Verbose logging")
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    for name, help_text in (
        ("info", "Project summary"),
        ("sequences", "List sequences"),
        ("media", "List media items"),
    ):
        p = subparsers.add_parser(name, help=help_text)
        p.add_argument("project", type=str, help="Premiere project file (.prproj)")

    # --- analyze ---
    p_analyze = subparsers.add_parser("analyze", help="Media usage of the selected sequences")
    p_analyze.add_argument("project", type=str, help="Premiere project file (.prproj)")
    p_analyze.add_argument("-s", "--sequence", action="append", help="Sequence id (repeatable, default: all)")
    p_analyze.add_argument("--handles", type=int, default=0, help="Handle frames (default: 0)")
    p_analyze.add_argument("--selected-angle-only", action="store_true", help="Only count the selected multicam angle")

    # --- estimate / consolidate ---
    _add_consolidation_options(subparsers.add_parser("estimate", help="Estimate output size"))
    _add_consolidation_options(subparsers.add_parser("consolidate", help="Run a consolidation"))

    # --- environment ---
    p_probe = subparsers.add_parser("probe", help="Encoder metadata of a media file")
    p_probe.add_argument("input", type=str, help="Media file")
    p_check = subparsers.add_parser("check-output", help="Check an output directory")
    p_check.add_argument("path", type=str, help="Output directory")
    subparsers.add_parser("check-ffmpeg", help="Check the encoder is available")

    return parser


COMMANDS = {
    "info": cmd_info,
    "sequences": cmd_sequences,
    "media": cmd_media,
    "analyze": cmd_analyze,
    "estimate": cmd_estimate,
    "consolidate": cmd_consolidate,
    "probe": cmd_probe,
    "check-output": cmd_check_output,
    "check-ffmpeg": cmd_check_ffmpeg,
}


def main(argv: list[str] | None = None) -> None:
    """CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        sys.exit(1)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else settings.log_level.upper(),
        format="%(levelname)s %(name)s: %(message)s",
    )

    engine = ConsolidationEngine()
    try:
        COMMANDS[args.command](engine, args)
    except (PconError, ValidationError) as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)
    finally:
        engine.shutdown()


if __name__ == "__main__":
    main()
