import argparse
import logging
import threading
from pathlib import Path
from typing import List, Optional, Sequence

import cv2
import numpy as np

from mangrove_kit import (
    CoordConvention,
    DecoderConfig,
    Detection,
    FrameResult,
    LatestFrameWorker,
    PipelineConfig,
    WorkerConfig,
    configure_logging,
    draw_detections,
    load_detector_profile,
    load_pipeline,
    summarize,
)

logger = logging.getLogger("detect_image")


def read_image_rgb(path: str) -> np.ndarray:
    img = cv2.imread(path, cv2.IMREAD_COLOR)
    if img is None:
        raise FileNotFoundError(f"Could not read image at path: {path}")
    return cv2.cvtColor(img, cv2.COLOR_BGR2RGB)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Detect mangrove tree states and draw labeled boxes.")
    src = parser.add_mutually_exclusive_group()
    src.add_argument("--image", default=None, help="Path to an input image.")
    src.add_argument("--video", default=None, help="Path to an input video file.")
    src.add_argument("--webcam", type=int, default=None, help="Webcam index (e.g., 0).")
    parser.add_argument("--profile", default=None, help="Detector profile JSON (overrides the flags below).")
    parser.add_argument("--model", default="models/best_float32.onnx", help="Path to the detection model (.onnx).")
    parser.add_argument("--labels", default="models/labels.txt", help="Class names, one per line.")
    parser.add_argument("--imgsz", type=int, default=640, help="Letterbox canvas size.")
    parser.add_argument("--conf", type=float, default=0.5, help="Confidence threshold (strictly greater passes).")
    parser.add_argument(
        "--convention",
        choices=[c.value for c in CoordConvention],
        default=CoordConvention.NORMALIZED_TO_SOURCE.value,
        help="How the model expresses box coordinates.",
    )
    parser.add_argument("--min-extent", type=float, default=None, help="Minimum box side in source pixels.")
    parser.add_argument("--nms", action="store_true", help="Suppress overlapping boxes (off by default).")
    parser.add_argument("--every", type=int, default=1, help="Process every Nth frame for video/webcam.")
    parser.add_argument("--max-frames", type=int, default=0, help="Stop after N frames (0 = no limit).")
    parser.add_argument("--show", action="store_true", help="Show a window with visualized detections.")
    parser.add_argument("--out", default=None, help="Optional output path (image or video) to save the visualization.")
    parser.add_argument("--log-level", default="INFO", help="Logging level.")
    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    if args.profile:
        profile = load_detector_profile(Path(args.profile))
        configure_logging(profile.log_level)
        config = profile.pipeline_config()
        worker_cfg = profile.worker_config()
        model_path, labels_path = profile.model_path, profile.labels_path
    else:
        configure_logging(args.log_level)
        if args.imgsz < 32:
            raise ValueError("--imgsz must be >= 32")
        if args.every < 1:
            raise ValueError("--every must be >= 1")
        config = PipelineConfig(
            input_size=int(args.imgsz),
            decoder=DecoderConfig(
                conf_threshold=args.conf,
                coord_convention=CoordConvention(args.convention),
                min_extent=args.min_extent,
                apply_nms=bool(args.nms),
            ),
        )
        worker_cfg = WorkerConfig(process_every=int(args.every))
        model_path, labels_path = args.model, args.labels

    pipeline = load_pipeline(model_path, labels_path, config=config)
    if not pipeline.model_available:
        logger.warning("Running without a model: every frame will report no detections")

    # Default behavior is image-based when no source is provided.
    image_path = args.image or (None if (args.video is not None or args.webcam is not None) else "Media/sample.jpg")

    if image_path is not None:
        img = read_image_rgb(image_path)
        detections = pipeline(img)
        for det in detections:
            print(det.class_id, det.display_text, det.as_xyxy())
        print(summarize(detections))

        vis = cv2.cvtColor(draw_detections(img, detections), cv2.COLOR_RGB2BGR)
        if args.out:
            ok = cv2.imwrite(args.out, vis)
            if not ok:
                raise RuntimeError(f"Failed to write output image: {args.out}")
        if args.show:
            cv2.imshow("detections", vis)
            cv2.waitKey(0)
            cv2.destroyAllWindows()
        return 0

    if args.max_frames < 0:
        raise ValueError("--max-frames must be >= 0")
    return _run_stream(args, pipeline, worker_cfg)


def _run_stream(args: argparse.Namespace, pipeline, worker_cfg: WorkerConfig) -> int:
    if args.video is not None:
        cap = cv2.VideoCapture(args.video)
        if not cap.isOpened():
            raise FileNotFoundError(f"Could not open video: {args.video}")
    else:
        cam_index = 0 if args.webcam is None else int(args.webcam)
        cap = cv2.VideoCapture(cam_index)
        if not cap.isOpened():
            raise RuntimeError(f"Could not open webcam index: {cam_index}")

    # Latest decoded result, drawn over whatever frame is current.
    lock = threading.Lock()
    latest: List[Detection] = []

    def on_result(result: FrameResult) -> None:
        with lock:
            latest[:] = result.detections
        logger.info("frame %d: %s", result.frame_id, summarize(result.detections, empty_text="Scanning..."))

    writer = None
    frames = 0
    worker = LatestFrameWorker(pipeline, on_result, worker_cfg)

    try:
        worker.start()
        while True:
            ok, frame_bgr = cap.read()
            if not ok or frame_bgr is None:
                break

            frame = cv2.cvtColor(frame_bgr, cv2.COLOR_BGR2RGB)
            worker.submit(frame)

            with lock:
                current = list(latest)
            vis = cv2.cvtColor(draw_detections(frame, current), cv2.COLOR_RGB2BGR)

            if args.out and writer is None:
                fps = cap.get(cv2.CAP_PROP_FPS)
                if fps is None or fps <= 0:
                    fps = 30.0
                h, w = vis.shape[:2]
                fourcc = cv2.VideoWriter_fourcc(*"mp4v")
                writer = cv2.VideoWriter(args.out, fourcc, fps, (w, h))
                if not writer.isOpened():
                    raise RuntimeError(f"Failed to open video writer: {args.out}")

            if writer is not None:
                writer.write(vis)

            if args.show:
                cv2.imshow("detections", vis)
                key = cv2.waitKey(1) & 0xFF
                if key in (27, ord("q")):
                    break

            frames += 1
            if args.max_frames and frames >= args.max_frames:
                break

    finally:
        worker.stop(timeout=5.0)
        cap.release()
        if writer is not None:
            writer.release()
        if args.show:
            cv2.destroyAllWindows()

    stats = worker.stats
    print(
        f"frames={frames} submitted={stats.submitted} processed={stats.processed} "
        f"superseded={stats.superseded} throttled={stats.throttled} late={stats.late} failed={stats.failed}"
    )
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
