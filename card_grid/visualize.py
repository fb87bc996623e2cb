from typing import List, Optional
import matplotlib.pyplot as plt
import numpy as np
import cv2
from .types import Candidate


def _label(c: Candidate) -> str:
    if c.grid_row < 0 or c.grid_column < 0:
        return f"#{c.id}"
    return f"r{c.grid_row}c{c.grid_column}"


def draw_cards_on_image(image_bgr: np.ndarray, cards: List[Candidate]) -> np.ndarray:
    vis = image_bgr.copy()
    if vis.ndim == 2:
        vis = cv2.cvtColor(vis, cv2.COLOR_GRAY2BGR)

    for c in cards:
        if c.removed:
            continue
        x, y = int(round(c.left)), int(round(c.top))
        x2, y2 = int(round(c.right)), int(round(c.bottom))
        color = (0, 255, 0) if c.confidence >= 0.8 else (0, 200, 255)

        cv2.rectangle(vis, (x, y), (x2, y2), color, 2)
        label = _label(c)

        (tw, th), _ = cv2.getTextSize(label, cv2.FONT_HERSHEY_SIMPLEX, 0.5, 1)
        y_text = max(th + 6, y - 4)
        cv2.rectangle(vis, (x, y_text - th - 6), (x + tw + 6, y_text), color, -1)
        cv2.putText(vis, label, (x + 3, y_text - 4), cv2.FONT_HERSHEY_SIMPLEX, 0.5, (0, 0, 0), 1, cv2.LINE_AA)

    return vis


def edge_overlay(image_bgr: np.ndarray, edges: np.ndarray, alpha: float = 0.7) -> np.ndarray:
    """Blend an edge map over the image in green."""
    base = image_bgr if image_bgr.ndim == 3 else cv2.cvtColor(image_bgr, cv2.COLOR_GRAY2BGR)
    green = np.zeros_like(base)
    green[edges > 0] = (0, 255, 0)
    return cv2.addWeighted(base, alpha, green, 1.0 - alpha, 0.0)


def show_cards(
    image_bgr: np.ndarray,
    cards: List[Candidate],
    title: str,
    max_boxes: Optional[int] = None,
) -> None:
    items = cards if max_boxes is None else cards[:max_boxes]
    vis = draw_cards_on_image(image_bgr, items)

    vis_rgb = cv2.cvtColor(vis, cv2.COLOR_BGR2RGB)
    plt.figure(figsize=(14, 10))
    plt.imshow(vis_rgb)
    plt.title(f"{title} (count={len(cards)})")
    plt.axis("off")
    plt.show()
