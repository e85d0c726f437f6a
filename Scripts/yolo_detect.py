from __future__ import annotations

import argparse
import logging
import sys
import time
from pathlib import Path
from typing import List, Optional, Sequence

from yolo_decode import FeatureMapLayout, InputConfig, PostprocessConfig, load_image, load_pipeline
from yolo_decode.config import apply_run_config, collect_cli_dests, load_run_config
from yolo_decode.errors import DecodeError
from yolo_decode.letterbox import adjust_boxes

logger = logging.getLogger("yolo_detect")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Run a YOLOv2/v3 ONNX model on one image and print detections.")
    parser.add_argument("--config", default=None, help="Optional JSON run config; CLI flags override it.")
    parser.add_argument("-m", "--model", default="./model.onnx", help="Path to the .onnx model.")
    parser.add_argument("-i", "--image", default="./dog.jpg", help="Input image.")
    parser.add_argument("-l", "--classes", default="./classes.txt", help="Class labels, one per line.")
    parser.add_argument("-a", "--anchors", default="./yolo3_anchors.txt", help="Anchor values for the model.")
    parser.add_argument("-b", "--input-mean", dest="input_mean", type=float, default=0.0, help="Input mean.")
    parser.add_argument("-s", "--input-std", dest="input_std", type=float, default=255.0, help="Input std.")
    parser.add_argument("-t", "--threads", type=int, default=4, help="Inference thread count.")
    parser.add_argument("-c", "--count", type=int, default=1, help="Run the model this many times.")
    parser.add_argument("-w", "--warmup-runs", dest="warmup_runs", type=int, default=2, help="Warm-up runs (count > 1 only).")
    parser.add_argument("--conf-threshold", dest="conf_threshold", type=float, default=0.1, help="Confidence threshold.")
    parser.add_argument("--iou-threshold", dest="iou_threshold", type=float, default=0.4, help="IoU threshold for NMS.")
    parser.add_argument("--max-workers", dest="max_workers", type=int, default=1, help="Decode output layers in parallel.")
    parser.add_argument(
        "--output-layout",
        dest="output_layout",
        choices=[FeatureMapLayout.CHANNEL_MAJOR.value, FeatureMapLayout.CHANNEL_MINOR.value],
        default=FeatureMapLayout.CHANNEL_MAJOR.value,
        help="Memory layout of the raw YOLO outputs.",
    )
    parser.add_argument(
        "--onnx-providers",
        dest="onnx_providers",
        default=None,
        help='Comma-separated ORT providers, e.g. "CUDAExecutionProvider,CPUExecutionProvider".',
    )
    parser.add_argument("--strict-anchors", dest="strict_anchors", action="store_true", help="Reject malformed anchor values.")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging.")
    return parser


def _ms(start: float, stop: float, runs: int = 1) -> float:
    return (stop - start) * 1000.0 / max(runs, 1)


def run(args: argparse.Namespace) -> List[str]:
    for label, path in (("model", args.model), ("image", args.image), ("classes", args.classes), ("anchors", args.anchors)):
        if not Path(path).exists():
            raise FileNotFoundError(f"{label} not found: {path}")

    providers: Optional[Sequence[str]] = None
    if args.onnx_providers:
        providers = [p.strip() for p in str(args.onnx_providers).split(",") if p.strip()]

    pipe = load_pipeline(
        args.model,
        args.anchors,
        args.classes,
        input_cfg=InputConfig(input_mean=args.input_mean, input_std=args.input_std),
        post_cfg=PostprocessConfig(
            conf_threshold=args.conf_threshold,
            iou_threshold=args.iou_threshold,
            max_workers=args.max_workers,
        ),
        strict_anchors=args.strict_anchors,
        onnx_providers=providers,
        output_layout=FeatureMapLayout(args.output_layout),
        num_threads=args.threads,
    )
    logger.info("image_input: %dx%d (%s)", pipe.input_size[0], pipe.input_size[1], pipe.input_layout.value)
    logger.info("ORT providers in use: %s", ", ".join(pipe.backend.providers_in_use))

    image = load_image(args.image, channels=pipe.backend.input_channels)
    logger.info("origin image size: width:%d, height:%d, channel:%d", image.shape[1], image.shape[0], image.shape[2])

    prep = pipe.preprocess(image)

    if args.count > 1:
        for _ in range(args.warmup_runs):
            pipe.infer(prep.blob)

    start = time.perf_counter()
    feature_maps = []
    for _ in range(args.count):
        feature_maps = pipe.infer(prep.blob)
    stop = time.perf_counter()
    logger.info("model invoke average time: %.3f ms", _ms(start, stop, args.count))

    start = time.perf_counter()
    candidates = pipe.decode(feature_maps)
    stop = time.perf_counter()
    logger.info("yolo_postprocess time: %.3f ms", _ms(start, stop))

    start = time.perf_counter()
    kept = pipe.suppress(candidates)
    stop = time.perf_counter()
    logger.info("NMS time: %.3f ms", _ms(start, stop))

    return [str(r) for r in pipe.results(adjust_boxes(kept, prep.transform))]


def main(argv: Optional[Sequence[str]] = None) -> int:
    argv = list(sys.argv[1:] if argv is None else argv)
    parser = build_parser()
    args = parser.parse_args(argv)
    if args.config:
        apply_run_config(
            args=args,
            payload=load_run_config(Path(args.config)),
            cli_dests=collect_cli_dests(parser, argv),
            parser=parser,
        )

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    try:
        lines = run(args)
    except (DecodeError, FileNotFoundError) as exc:
        logger.error("%s", exc)
        return 1

    print("Detection result:")
    for line in lines:
        print(line)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
