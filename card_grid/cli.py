import sys
import os
import json
import cv2
from .config import DetectionConfig
from .core import detect_cards
from .diagnostics import DiagnosticsSink
from .grid import analyze_grid


def main(argv=None):
    argv = sys.argv if argv is None else argv
    if len(argv) < 2:
        print('Usage: python -m card_grid.cli "inputs/your_image.jpg" [default|fast|accurate]')
        sys.exit(2)

    in_path = argv[1]
    config = DetectionConfig.preset(argv[2] if len(argv) > 2 else "default")

    img = cv2.imread(in_path, cv2.IMREAD_COLOR)
    if img is None:
        raise FileNotFoundError(f"Cannot read image: {in_path}")

    os.makedirs("outputs", exist_ok=True)
    base = os.path.splitext(os.path.basename(in_path))[0]
    json_path = os.path.join("outputs", f"{base}.json")
    vis_path = os.path.join("outputs", f"{base}.jpg")

    sink = DiagnosticsSink(echo=True)
    result = detect_cards(img, config, sink=sink)
    if not result.is_successful:
        print(f"[ERROR] {result.error_message}")
        sys.exit(1)

    analysis = analyze_grid(result.cards, result.rows, result.cols, config.min_cards_for_valid_grid)
    print(f"[INFO] Grid completeness {analysis.completeness:.0%}, valid={analysis.is_valid}")

    with open(json_path, "w", encoding="utf-8") as f:
        json.dump(result.to_export_format(), f, ensure_ascii=False, indent=2)
    print(f"[OK] Wrote JSON to: {json_path}")

    from .visualize import draw_cards_on_image
    vis = draw_cards_on_image(img, result.cards)
    ok = cv2.imwrite(vis_path, vis)
    if not ok:
        raise RuntimeError(f"Failed to write image: {vis_path}")
    print(f"[OK] Wrote visualization to: {vis_path}")


if __name__ == "__main__":
    main()
