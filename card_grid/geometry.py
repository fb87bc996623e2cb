from typing import List, Optional
import numpy as np
import cv2

from .types import OrientedRect


def to_gray(img: np.ndarray) -> np.ndarray:
    if img.ndim == 2:
        return img
    if img.shape[2] == 4:
        return cv2.cvtColor(img, cv2.COLOR_BGRA2GRAY)
    return cv2.cvtColor(img, cv2.COLOR_BGR2GRAY)


def mean_intensity(gray: np.ndarray) -> float:
    return float(cv2.mean(gray)[0])


def find_contours(mask: np.ndarray) -> List[np.ndarray]:
    contours, _ = cv2.findContours(mask, cv2.RETR_EXTERNAL, cv2.CHAIN_APPROX_SIMPLE)
    return list(contours)


def _filter_by_area(cnt: np.ndarray, min_area: float, max_area: float) -> Optional[float]:
    area = float(cv2.contourArea(cnt))
    if area < float(min_area) or area > float(max_area):
        return None
    return area


def approx_poly(cnt: np.ndarray, eps_ratio: float) -> np.ndarray:
    peri = cv2.arcLength(cnt, True)
    eps = eps_ratio * peri
    return cv2.approxPolyDP(cnt, eps, True)


def normalize_angle(size_a: float, size_b: float, angle: float):
    """Fold an OpenCV box angle into (-45, 45], swapping sides as needed.

    OpenCV 4.5+ reports minAreaRect angles in (0, 90] while older builds
    use [-90, 0); both describe the same box once folded.
    """
    while angle > 45.0:
        angle -= 90.0
        size_a, size_b = size_b, size_a
    while angle <= -45.0:
        angle += 90.0
        size_a, size_b = size_b, size_a
    return size_a, size_b, angle


def min_area_rect(cnt: np.ndarray) -> OrientedRect:
    (cx, cy), (w, h), angle = cv2.minAreaRect(cnt.reshape(-1, 2).astype(np.float32))
    w, h, angle = normalize_angle(float(w), float(h), float(angle))
    return OrientedRect(center_x=float(cx), center_y=float(cy), size_a=w, size_b=h, angle=angle)
