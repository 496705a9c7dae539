"""``koko``: Kokoro text-to-speech from the command line or over HTTP.

Usage::

    koko text "Hello world." -o tmp/hello.wav
    koko -s af_sky file lines.txt -o "tmp/line_{line}.wav"
    echo "Streaming works too." | koko --mono stream > out.wav
    koko --instances 2 --provider cuda openai --port 3000
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import os
import sys
import time
from logging.handlers import TimedRotatingFileHandler
from pathlib import Path
from typing import TYPE_CHECKING

from koko_core.audio import StreamSink, write_wav
from koko_core.constants import (
    DEFAULT_DATA_PATH,
    DEFAULT_HTTP_PORT,
    DEFAULT_INSTANCES,
    DEFAULT_LANGUAGE,
    DEFAULT_LOG_FILE,
    DEFAULT_MODEL_PATH,
    DEFAULT_STYLE,
)
from koko_core.device import get_backend
from koko_core.errors import KokoError
from koko_core.types import SynthesisOptions

if TYPE_CHECKING:
    from koko_serve.tts_engine import TTSEngine

logger = logging.getLogger(__name__)

DEFAULT_TEXT = (
    "Hello, This is Kokoro, your remarkable AI TTS. It's a TTS model with merely "
    "82 million parameters yet delivers incredible audio quality. As the night falls, I "
    "wish you all a peaceful and restful sleep. May your dreams be filled with "
    "joy and happiness. Good night, and sweet dreams!"
)

# Unix seconds with microseconds, e.g. "1718030405.123456"
_LOG_FORMAT = "%(created).6f %(levelname)5s %(message)s"


def _phase_shift(value: str) -> float:
    k = float(value)
    if not -1.0 <= k <= 1.0:
        raise argparse.ArgumentTypeError(f"phase shift must be within [-1, 1], got {k}")
    return k


def _positive_float(value: str) -> float:
    v = float(value)
    if v <= 0.0:
        raise argparse.ArgumentTypeError(f"must be positive, got {v}")
    return v


def _positive_int(value: str) -> int:
    v = int(value)
    if v < 1:
        raise argparse.ArgumentTypeError(f"must be >= 1, got {v}")
    return v


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="koko",
        description="Kokoro text-to-speech: synthesize text, files, stdin streams, or serve an OpenAI-compatible API.",
    )
    parser.add_argument(
        "-l", "--lan",
        default=DEFAULT_LANGUAGE,
        help=f"espeak-ng language code for phonemization (default: {DEFAULT_LANGUAGE}).",
    )
    parser.add_argument(
        "-m", "--model",
        type=Path,
        default=Path(os.environ.get("KOKO_MODEL", DEFAULT_MODEL_PATH)),
        help="Path to the Kokoro ONNX model; downloaded if missing (env: KOKO_MODEL).",
    )
    parser.add_argument(
        "-d", "--data",
        type=Path,
        default=Path(os.environ.get("KOKO_DATA", DEFAULT_DATA_PATH)),
        help="Path to the style data file, .json or .npz/.bin (env: KOKO_DATA).",
    )
    parser.add_argument(
        "-s", "--style",
        default=DEFAULT_STYLE,
        help="Style name or blend 'name1.w1+name2.w2', weights in tenths "
             f"(default: {DEFAULT_STYLE}).",
    )
    parser.add_argument(
        "-p", "--speed",
        type=_positive_float,
        default=1.0,
        help="Speech rate multiplier (default: 1.0).",
    )
    parser.add_argument(
        "--mono",
        action="store_true",
        help="Write single-channel audio instead of stereo.",
    )
    parser.add_argument(
        "--phase-shift",
        type=_phase_shift,
        default=0.0,
        help="All-pass coefficient in [-1, 1] for the right channel; 0 duplicates the left.",
    )
    parser.add_argument(
        "--initial-silence",
        type=int,
        default=None,
        metavar="N",
        help="Prepend N silence tokens to every chunk.",
    )
    parser.add_argument(
        "--instances",
        type=_positive_int,
        default=DEFAULT_INSTANCES,
        help=f"Inference instances in server mode (default: {DEFAULT_INSTANCES}). CLI modes use one.",
    )
    parser.add_argument(
        "--provider",
        choices=["cpu", "cuda", "auto"],
        default=os.environ.get("KOKO_PROVIDER", "cpu"),
        help="ONNX Runtime execution provider (default: cpu, env: KOKO_PROVIDER).",
    )
    parser.add_argument(
        "--log",
        choices=["cli", "file", "all", "none"],
        default="cli",
        help="Log destination (default: cli).",
    )
    parser.add_argument(
        "--log-file",
        type=Path,
        default=Path(os.environ.get("KOKO_LOG_FILE", DEFAULT_LOG_FILE)),
        help=f"Log file for --log file/all, rotated daily (default: {DEFAULT_LOG_FILE}).",
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Verbose logging.",
    )

    sub = parser.add_subparsers(dest="mode", required=True)

    text_p = sub.add_parser("text", aliases=["t"], help="Synthesize one text to a WAV file.")
    text_p.add_argument("text", nargs="?", default=DEFAULT_TEXT)
    text_p.add_argument("-o", "--output", type=Path, default=Path("tmp/output.wav"))
    text_p.set_defaults(handler=run_text)

    file_p = sub.add_parser("file", aliases=["f"], help="Synthesize each line of a file to its own WAV.")
    file_p.add_argument("input_path", type=Path)
    file_p.add_argument(
        "-o", "--output",
        default="tmp/output_{line}.wav",
        help="Output path; '{line}' is replaced by the zero-based line number.",
    )
    file_p.set_defaults(handler=run_file)

    stream_p = sub.add_parser(
        "stream", aliases=["stdio", "stdin"],
        help="Read lines from stdin and stream WAV audio to stdout.",
    )
    stream_p.set_defaults(handler=run_stream_mode)

    oai_p = sub.add_parser("openai", aliases=["oai"], help="Serve the OpenAI-compatible speech API.")
    oai_p.add_argument("--ip", default="0.0.0.0", help="Bind address (default: 0.0.0.0).")
    oai_p.add_argument("--port", type=int, default=DEFAULT_HTTP_PORT)
    oai_p.add_argument(
        "--fan-out",
        action="store_true",
        help="Spread the chunks of one request across all instances.",
    )
    oai_p.set_defaults(handler=run_openai)

    return parser


def setup_logging(destination: str = "cli", log_file: str | Path | None = None, verbose: bool = False) -> None:
    """Route log records to stderr, a daily-rotated file, both, or nowhere."""
    if destination == "none":
        logging.basicConfig(level=logging.CRITICAL + 1, handlers=[logging.NullHandler()], force=True)
        return

    handlers: list[logging.Handler] = []
    if destination in ("cli", "all"):
        handlers.append(logging.StreamHandler(sys.stderr))
    if destination in ("file", "all"):
        path = Path(log_file or DEFAULT_LOG_FILE)
        path.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(TimedRotatingFileHandler(path, when="midnight", encoding="utf-8"))
        print(f"File logging enabled: {path}", file=sys.stderr)

    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format=_LOG_FORMAT,
        handlers=handlers,
        force=True,
    )


def options_from_args(args: argparse.Namespace) -> SynthesisOptions:
    return SynthesisOptions(
        language=args.lan,
        style=args.style,
        speed=args.speed,
        initial_silence=args.initial_silence,
        mono=args.mono,
        phase_shift=args.phase_shift,
    )


def build_engine(args: argparse.Namespace, instances: int = 1) -> TTSEngine:
    """Fetch the model if needed, load styles and start the pool."""
    from koko_serve.download import ensure_model
    from koko_serve.pool import InferencePool
    from koko_serve.style_resolver import StyleTable
    from koko_serve.tts_engine import TTSEngine

    model_path = ensure_model(args.model)
    backend = get_backend(args.provider)
    styles = StyleTable.load(args.data)
    pool = InferencePool.from_model(model_path, instances, backend)
    return TTSEngine(pool, styles)


def _cli_engine(args: argparse.Namespace) -> TTSEngine:
    if args.instances > 1:
        logger.info(
            "CLI mode: using a single instance (--instances %d applies to the server only)",
            args.instances,
        )
    return build_engine(args, instances=1)


def run_text(args: argparse.Namespace) -> int:
    engine = _cli_engine(args)
    options = options_from_args(args)
    try:
        t0 = time.perf_counter()
        audio = engine.synthesize(args.text, options)
        write_wav(args.output, audio, mono=options.mono, phase_shift=options.phase_shift)
        elapsed = time.perf_counter() - t0
    finally:
        engine.close()

    print(f"Time taken: {elapsed:.3f}s")
    if elapsed > 0:
        print(f"Words per second: {len(args.text.split()) / elapsed:.2f}")
    return 0


def run_file(args: argparse.Namespace) -> int:
    engine = _cli_engine(args)
    options = options_from_args(args)
    lines = Path(args.input_path).read_text(encoding="utf-8").splitlines()
    try:
        for i, line in enumerate(lines):
            text = line.strip()
            if not text:
                continue
            save_path = args.output.replace("{line}", str(i))
            audio = engine.synthesize(text, options)
            write_wav(save_path, audio, mono=options.mono, phase_shift=options.phase_shift)
    finally:
        engine.close()
    return 0


def run_stream_mode(args: argparse.Namespace) -> int:
    from koko_serve.streaming import read_lines, run_stream

    engine = _cli_engine(args)
    options = options_from_args(args)
    sink = StreamSink(sys.stdout.buffer, mono=options.mono, phase_shift=options.phase_shift)
    print("Entering streaming mode. Type text and press Enter. Use Ctrl+D to exit.", file=sys.stderr)
    try:
        asyncio.run(run_stream(engine, read_lines(sys.stdin), sink, options))
    finally:
        engine.close()
    return 0


def run_openai(args: argparse.Namespace) -> int:
    from koko_serve.app import init_app

    engine = build_engine(args, instances=args.instances)
    init_app(engine, defaults=options_from_args(args), fan_out=args.fan_out)
    try:
        asyncio.run(_serve(args.ip, args.port, args.verbose))
    finally:
        engine.close()
    return 0


async def _serve(host: str, port: int, verbose: bool = False) -> None:
    import uvicorn

    from koko_serve.app import app

    config = uvicorn.Config(
        app,
        host=host,
        port=port,
        log_level="debug" if verbose else "info",
        log_config=None,
    )
    logger.info("Starting OpenAI-compatible HTTP server on %s:%d", host, port)
    await uvicorn.Server(config).serve()


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    setup_logging(args.log, args.log_file, args.verbose)

    try:
        return args.handler(args)
    except KokoError as e:
        logger.error("%s", e)
        return 1


if __name__ == "__main__":
    sys.exit(main())
