import argparse
import json
import logging
import math
from pathlib import Path
from typing import Dict, List, Optional, Sequence

from geolocus import (
    HttpEliminationClient,
    SympyEliminationEngine,
    load_scene,
    parse_viewport,
    run_service,
)

logger = logging.getLogger(__name__)


def _configure_logging(level: str) -> None:
    log_level = getattr(logging, level.upper(), logging.INFO)
    logging.basicConfig(
        level=log_level,
        format="%(levelname)s:%(name)s:%(message)s",
    )


def _floats(values) -> List[Optional[float]]:
    return [None if math.isnan(v) else float(v) for v in values]


def _run_locus(args: argparse.Namespace) -> None:
    if args.service:
        client = HttpEliminationClient(args.service, timeout=args.timeout)
    else:
        client = SympyEliminationEngine(timeout=args.timeout)

    logger.info("Loading scene from %s", args.path)
    board = load_scene(args.path, client)
    if args.viewport:
        board.scheduler.viewport = parse_viewport(args.viewport)

    loci = [el for el in board.graph if el.kind == "locus"]
    if args.locus:
        loci = [el for el in loci if el.name == args.locus]
    if not loci:
        logger.error("Scene has no locus%s", f" named {args.locus!r}" if args.locus else "")
        raise SystemExit(1)

    report: Dict[str, object] = {}
    for element in loci:
        curve = board.refresh(element.id)
        state = board.locus_state(element.id)
        result = state.result
        label = element.label()
        print(f"Locus {label}:")
        if result is None:
            print(f"  failed: {state.last_error}")
        else:
            print(f"  elapsed: {result.elapsed:.3f}s")
            print(f"  points: {len(curve)} in {len(curve.branches())} branch(es)")
            for equation in result.polynomial:
                print(f"  {equation} = 0")
        report[label] = {
            "polynomial": list(result.polynomial) if result else [],
            "parameters": dict(result.parameters) if result else {},
            "elapsed": result.elapsed if result else None,
            "stale": state.is_stale(),
            "error": str(state.last_error) if state.last_error else None,
            "x": _floats(curve.xs),
            "y": _floats(curve.ys),
        }

    if args.output:
        output_path = Path(args.output)
        output_path.parent.mkdir(parents=True, exist_ok=True)
        output_path.write_text(json.dumps(report, indent=2), encoding="utf-8")
        logger.info("Wrote locus data to %s", output_path)


def _run_serve(args: argparse.Namespace) -> None:
    engine = SympyEliminationEngine(timeout=args.timeout)
    run_service(engine, host=args.host, port=args.port)


def main(argv: Optional[Sequence[str]] = None) -> None:
    parser = argparse.ArgumentParser(description="Discover and sample geometric loci")
    parser.add_argument(
        "--log-level",
        default="INFO",
        help="Logging level (default: INFO)",
    )
    parser.add_argument(
        "--timeout",
        type=float,
        default=10.0,
        help="Elimination timeout in seconds (default: 10)",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    locus = sub.add_parser("locus", help="Compute the loci of a JSON scene")
    locus.add_argument("path", help="Path to the JSON scene file")
    locus.add_argument("--locus", help="Only compute the locus with this name")
    locus.add_argument(
        "--service",
        help="URL of an elimination service; the local sympy engine is used otherwise",
    )
    locus.add_argument("--viewport", help="Viewport as xmin,ymin,xmax,ymax")
    locus.add_argument("--output", help="Write polynomials and sampled points as JSON")

    serve = sub.add_parser("serve", help="Run the HTTP elimination service")
    serve.add_argument("--host", default="127.0.0.1")
    serve.add_argument("--port", type=int, default=8765)

    args = parser.parse_args(argv)
    _configure_logging(args.log_level)

    if args.command == "serve":
        _run_serve(args)
    else:
        _run_locus(args)


if __name__ == "__main__":
    main()
