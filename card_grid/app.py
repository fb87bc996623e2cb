from dataclasses import asdict
from typing import Any, Dict
import cv2
import numpy as np
from fastapi import FastAPI, File, UploadFile, Query, HTTPException
from fastapi.responses import JSONResponse
from fastapi.middleware.cors import CORSMiddleware

from .config import DetectionConfig
from .core import detect_cards
from .grid import analyze_grid

app = FastAPI(title="Card Grid API", version="1.0.0")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def decode_upload_to_bgr(upload: UploadFile) -> np.ndarray:
    data = upload.file.read()
    if not data:
        raise HTTPException(status_code=400, detail="Empty file.")
    arr = np.frombuffer(data, dtype=np.uint8)
    img = cv2.imdecode(arr, cv2.IMREAD_COLOR)
    if img is None:
        raise HTTPException(status_code=400, detail="Could not decode image. Provide a valid JPG/PNG.")
    return img


def analysis_payload(analysis) -> Dict[str, Any]:
    out = asdict(analysis)
    out["duplicate_positions"] = sorted(list(p) for p in analysis.duplicate_positions)
    return out


@app.post("/detect")
def detect(
    file: UploadFile = File(...),
    preset: str = Query("default", description='One of "default", "fast", "accurate"'),
):
    try:
        config = DetectionConfig.preset(preset)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    img = decode_upload_to_bgr(file)
    result = detect_cards(img, config)
    if not result.is_successful:
        raise HTTPException(status_code=422, detail=result.error_message)

    payload = result.to_export_format()
    payload["gridAnalysis"] = analysis_payload(
        analyze_grid(result.cards, result.rows, result.cols, config.min_cards_for_valid_grid)
    )
    return JSONResponse(payload)
