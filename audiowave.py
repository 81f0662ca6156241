import os
import sys
import json
import logging
import argparse
import threading
from datetime import datetime

try:
    from rich.console import Console
    from rich.logging import RichHandler
    from rich.panel import Panel
    from rich.progress import Progress, SpinnerColumn, BarColumn, TextColumn
except ImportError:
    print("Error: The 'rich' library is required for the CLI but not installed.", file=sys.stderr)
    print("Please install it with: pip install audiowave[cli]", file=sys.stderr)
    sys.exit(1)

from audiowavelib import __version__
from audiowavelib.audio import WaveformError, format_duration, format_time, open_audio
from audiowavelib.config import ConfigError, build_config, default_config, load_preset, merge_configs
from audiowavelib.controller import PlaybackController
from audiowavelib.models import Completed, InProgress, PlayerState
from audiowavelib.waveform import stream_generate

console = Console()


def positive_int(value):
    ivalue = int(value)
    if ivalue <= 0:
        raise argparse.ArgumentTypeError("must be a positive integer")
    return ivalue


def positive_float(value):
    fvalue = float(value)
    if fvalue <= 0.0:
        raise argparse.ArgumentTypeError("must be a positive number")
    return fvalue


def build_parser():
    defaults = default_config()
    parser = argparse.ArgumentParser(
        description="Extract a peak-amplitude waveform from an audio file",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter
    )
    parser.add_argument("--version", action="version",
                        version=f"audiowave {__version__}")

    parser.add_argument("file", type=str,
                        help="Audio file to analyse (anything libsndfile can decode)")

    parser.add_argument("--bars", type=positive_int, default=None,
                        help=f"Number of amplitude bars (default {defaults['bar_count']})")
    parser.add_argument("--chunk_seconds", type=positive_float, default=None,
                        help=f"Streaming chunk length in seconds (default {defaults['chunk_seconds']:g})")
    parser.add_argument("--preset", type=str, default=None,
                        help="JSON preset with configuration overrides")

    parser.add_argument("--json", type=str, default=None,
                        help="Write the amplitude series to this JSON file")
    parser.add_argument("--play", action="store_true",
                        help="Play the file after extraction and wait for it to finish")
    parser.add_argument("-v", "--verbose", action="store_true",
                        help="Log library warnings and debug output")
    return parser


def build_run_config(args):
    overrides = load_preset(args.preset) if args.preset else {}
    cli_overrides = {}
    if args.bars is not None:
        cli_overrides["bar_count"] = args.bars
    if args.chunk_seconds is not None:
        cli_overrides["chunk_seconds"] = args.chunk_seconds
    return build_config(merge_configs(overrides, cli_overrides))


def save_json(path, audio_path, info, amplitudes):
    """Write the amplitude series plus basic file info."""
    data = {
        "schema_version": "1.0",
        "timestamp": datetime.now().isoformat(),
        "file": os.path.abspath(audio_path),
        "samplerate": info["samplerate"],
        "channels": info["channels"],
        "frames": info["frames"],
        "duration_sec": info["duration"],
        "bar_count": len(amplitudes),
        "amplitudes": [round(float(a), 6) for a in amplitudes],
    }
    os.makedirs(os.path.dirname(path) or ".", exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        json.dump(data, f, indent=2)


def extract(path, config):
    """Run the streamed extraction with a progress bar; returns amplitudes."""
    amplitudes = None
    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        BarColumn(),
        TextColumn("{task.percentage:>3.0f}%"),
        console=console,
    ) as progress:
        task_id = progress.add_task("[cyan]Extracting waveform...", total=1.0)
        for update in stream_generate(path, config["bar_count"],
                                      chunk_seconds=config["chunk_seconds"]):
            if isinstance(update, InProgress):
                progress.update(task_id, completed=update.fraction)
            elif isinstance(update, Completed):
                progress.update(task_id, completed=1.0)
                amplitudes = update.amplitudes
    return amplitudes


def play(path, config):
    """Play *path* through the controller until it rewinds at the end."""
    controller = PlaybackController(config)
    finished = threading.Event()

    def on_state(state, error):
        if state in (PlayerState.PAUSED, PlayerState.ERROR, PlayerState.IDLE):
            finished.set()

    controller.events.subscribe("state.changed", on_state)
    if controller.load(path) is not PlayerState.READY:
        console.print(f"[bold red]Error:[/] Cannot play: {controller.error}")
        controller.reset()
        return False

    with Progress(
        TextColumn("[progress.description]{task.description}"),
        BarColumn(),
        TextColumn("{task.fields[elapsed]} / {task.fields[length]}"),
        console=console,
    ) as bar:
        task_id = bar.add_task(
            "[green]Playing", total=max(controller.duration, 1e-9),
            elapsed="0:00", length=controller.duration_formatted,
        )

        def on_time(current_time, duration, progress):
            bar.update(task_id, completed=current_time,
                       elapsed=format_time(current_time))

        controller.events.subscribe("time.changed", on_time)
        controller.play()
        if controller.state is not PlayerState.PLAYING:
            console.print("[bold red]Error:[/] Playback did not start.")
            controller.reset()
            return False
        try:
            while not finished.wait(0.25):
                pass
        except KeyboardInterrupt:
            console.print("[yellow]Stopped.[/]")
        finally:
            controller.reset()
    return True


def main(argv=None):
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.verbose:
        logging.basicConfig(level=logging.DEBUG, format="%(message)s",
                            handlers=[RichHandler(console=console)])

    try:
        config = build_run_config(args)
    except ConfigError as e:
        console.print(f"[bold red]Error:[/] {e}")
        return 2

    try:
        with open_audio(args.file) as reader:
            info = {
                "samplerate": reader.samplerate,
                "channels": reader.channels,
                "frames": reader.frames,
                "duration": reader.duration,
            }
    except WaveformError as e:
        console.print(f"[bold red]Error:[/] {e}")
        return 1

    console.print(Panel.fit(
        f"[bold]{os.path.basename(args.file)}[/]\n"
        f"Format: [cyan]{info['samplerate']} Hz[/] | [cyan]{info['channels']} ch[/]\n"
        f"Length: [cyan]{format_duration(info['frames'], info['samplerate'])}[/] "
        f"({info['frames']} frames)\n"
        f"Bars: [cyan]{config['bar_count']}[/] | Chunk: [cyan]{config['chunk_seconds']:g} s[/]",
        title="audiowave"
    ))

    try:
        amplitudes = extract(args.file, config)
    except WaveformError as e:
        console.print(f"[bold red]Error:[/] {e}")
        return 1

    console.print(" ".join(f"{a:.2f}" for a in amplitudes))

    if args.json:
        save_json(args.json, args.file, info, amplitudes)
        console.print(f"\n[dim]Amplitudes saved to: {args.json}[/]")

    if args.play and not play(args.file, config):
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
