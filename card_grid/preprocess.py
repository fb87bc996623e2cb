from typing import Tuple
import math
import cv2
import numpy as np

from .config import CARD_THRESH
from .geometry import to_gray
from .types import ThresholdParams


def maybe_resize(img: np.ndarray, max_width: int = 2000, max_height: int = 2000) -> Tuple[np.ndarray, float]:
    h, w = img.shape[:2]
    if w <= max_width and h <= max_height:
        return img, 1.0
    scale = min(max_width / float(w), max_height / float(h))
    img = cv2.resize(img, (int(w * scale), int(h * scale)), interpolation=cv2.INTER_AREA)
    return img, scale


def enhance_contrast(img: np.ndarray, clip_limit: float = 2.0, tile: int = 8) -> np.ndarray:
    clahe = cv2.createCLAHE(clipLimit=clip_limit, tileGridSize=(tile, tile))
    return clahe.apply(to_gray(img))


def preprocess_for_edges(img: np.ndarray, blur_size: int = 5, contrast: bool = False) -> np.ndarray:
    """Grayscale, optional CLAHE, then Gaussian blur (skipped for blur_size 0)."""
    gray = enhance_contrast(img) if contrast else to_gray(img)
    if blur_size > 0:
        gray = cv2.GaussianBlur(gray, (blur_size, blur_size), 0)
    return gray


def adaptive_thresholds(image_width: int, image_height: int) -> ThresholdParams:
    # a card covers roughly 1/24..1/30 of the frame once spacing is counted
    expected_area = image_width * image_height / 30.0
    expected_h = math.sqrt(expected_area / 0.7)
    expected_w = expected_h * 0.7
    return ThresholdParams(
        min_area=int(expected_area * 0.5),
        max_area=int(expected_area * 1.5),
        min_width=int(expected_w * 0.5),
        min_height=int(expected_h * 0.5),
        aspect_ratio_min=CARD_THRESH["aspect_ratio_min"],
        aspect_ratio_max=CARD_THRESH["aspect_ratio_max"],
    )


def fixed_thresholds(min_area: float, max_area: float) -> ThresholdParams:
    return ThresholdParams(
        min_area=min_area,
        max_area=max_area,
        min_width=CARD_THRESH["min_width"],
        min_height=CARD_THRESH["min_height"],
        aspect_ratio_min=CARD_THRESH["aspect_ratio_min"],
        aspect_ratio_max=CARD_THRESH["aspect_ratio_max"],
    )
