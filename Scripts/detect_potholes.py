import argparse
import logging

import cv2

from pothole_kit import DetectorConfig, FrameGate, draw_detections, load_detector, load_detector_config


def main() -> int:
    parser = argparse.ArgumentParser(description="Detect potholes and draw boxes with confidence + distance.")
    src = parser.add_mutually_exclusive_group(required=True)
    src.add_argument("--image", default=None, help="Path to an input image.")
    src.add_argument("--video", default=None, help="Path to an input video file.")
    src.add_argument("--webcam", type=int, default=None, help="Webcam index (e.g., 0).")
    parser.add_argument("--model", default="Models/best_int8.tflite", help="Path to a pothole model (.tflite/.onnx).")
    parser.add_argument("--backend", default=None, help="Force backend: tflite / onnxruntime.")
    parser.add_argument("--config", default=None, help="Optional detector config JSON.")
    parser.add_argument("--conf", type=float, default=None, help="Override confidence threshold.")
    parser.add_argument("--iou", type=float, default=None, help="Override IoU threshold for NMS.")
    parser.add_argument("--threads", type=int, default=4, help="Interpreter threads.")
    parser.add_argument("--min-interval", type=float, default=0.0, help="Min seconds between processed frames.")
    parser.add_argument(
        "--max-dimension", type=int, default=1280, help="Shrink frames to this longest side first (0 = keep size)."
    )
    parser.add_argument("--show", action="store_true", help="Show a window with visualized detections.")
    parser.add_argument("--out", default=None, help="Optional output path (image or video) to save the visualization.")
    parser.add_argument("--max-frames", type=int, default=0, help="Stop after N frames (0 = no limit).")
    parser.add_argument("--verbose", action="store_true", help="Log per-frame stage counts.")
    args = parser.parse_args()

    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.INFO, format="%(name)s: %(message)s")

    cfg = load_detector_config(args.config) if args.config else DetectorConfig()
    if args.conf is not None:
        cfg = cfg.replace(confidence_threshold=args.conf)
    if args.iou is not None:
        cfg = cfg.replace(iou_threshold=args.iou)
    if args.max_dimension < 0:
        raise ValueError("--max-dimension must be >= 0")
    if args.max_frames < 0:
        raise ValueError("--max-frames must be >= 0")

    max_dimension = args.max_dimension or None

    with load_detector(
        args.model, cfg=cfg, max_dimension=max_dimension, backend=args.backend, num_threads=args.threads
    ) as detector:
        if args.image is not None:
            img = cv2.imread(args.image)
            if img is None:
                raise FileNotFoundError(f"Could not read image at path: {args.image}")

            img = detector.fit_frame(img)
            detections = detector(img)
            vis = draw_detections(img, detections)
            if args.out:
                ok = cv2.imwrite(args.out, vis)
                if not ok:
                    raise RuntimeError(f"Failed to write output image: {args.out}")

            if args.show:
                cv2.imshow("potholes", vis)
                cv2.waitKey(0)
                cv2.destroyAllWindows()

            if not detections:
                print("No potholes detected")
            for i, det in enumerate(detections, start=1):
                print(f"Pothole #{i}: confidence={det.confidence:.5f} distance={det.distance:.1f}m box={det.as_xyxy()}")
            return 0

        if args.video is not None:
            cap = cv2.VideoCapture(args.video)
            if not cap.isOpened():
                raise FileNotFoundError(f"Could not open video: {args.video}")
        else:
            cap = cv2.VideoCapture(int(args.webcam))
            if not cap.isOpened():
                raise RuntimeError(f"Could not open webcam index: {args.webcam}")

        gate = FrameGate(min_interval_s=args.min_interval)
        writer = None
        processed = 0
        try:
            while True:
                ok, frame = cap.read()
                if not ok or frame is None:
                    break

                # Skipped frames reuse the last boxes so the output keeps the source frame rate.
                frame = detector.fit_frame(frame)
                detections = gate.submit_or_latest(detector, frame, default=[])
                vis = draw_detections(frame, detections)

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
                    cv2.imshow("potholes", vis)
                    key = cv2.waitKey(1) & 0xFF
                    if key in (27, ord("q")):
                        break

                processed += 1
                if args.max_frames and processed >= args.max_frames:
                    break
        finally:
            cap.release()
            if writer is not None:
                writer.release()
            if args.show:
                cv2.destroyAllWindows()

    return 0


if __name__ == "__main__":
    raise SystemExit(main())
