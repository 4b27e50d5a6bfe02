"""
==============================================================================
Barcode Decoder Module
==============================================================================

Frame-level barcode decoding with OpenCV and pyzbar.

Each frame is cropped to the viewfinder aspect ratio, then to the centred
decode region, converted to grayscale and handed to zbar. Only the decode
region is searched, which keeps per-frame cost low at the configured frame
rate and ignores codes at the edge of the picture.

==============================================================================
"""

from __future__ import annotations

import logging
from typing import Optional

import cv2
import numpy as np
from pyzbar.pyzbar import decode

from .models import ScanConfig


# Module logger
logger = logging.getLogger(__name__)


class BarcodeDecoder:
    """
    Decoder for single video frames.

    Example:
        >>> decoder = BarcodeDecoder(ScanConfig())
        >>> decoder.decode(frame)
        '8901234567890'
    """

    def __init__(self, config: Optional[ScanConfig] = None) -> None:
        self._config = config or ScanConfig()

    @property
    def config(self) -> ScanConfig:
        return self._config

    def region_of_interest(self, frame: np.ndarray) -> np.ndarray:
        """
        Crop a frame to the area the decoder searches.

        Args:
            frame: OpenCV image (numpy array, HxW or HxWxC)

        Returns:
            View of the frame covering the centred decode region
        """
        height, width = frame.shape[:2]
        aspect = self._config.aspect_ratio

        # Viewfinder: largest centred crop with the configured aspect ratio
        view_width, view_height = width, height
        if width / height > aspect:
            view_width = max(1, int(round(height * aspect)))
        else:
            view_height = max(1, int(round(width / aspect)))

        left = (width - view_width) // 2
        top = (height - view_height) // 2

        region = self._config.decode_region
        box_width = min(region.width, view_width)
        box_height = min(region.height, view_height)

        x = left + (view_width - box_width) // 2
        y = top + (view_height - box_height) // 2

        return frame[y:y + box_height, x:x + box_width]

    def decode(self, frame: Optional[np.ndarray]) -> Optional[str]:
        """
        Decode the first barcode inside the decode region.

        Args:
            frame: OpenCV image, or None when the capture read failed

        Returns:
            Decoded text, or None when no code was found
        """
        if frame is None or frame.size == 0:
            return None

        roi = self.region_of_interest(frame)
        if roi.ndim == 3:
            roi = cv2.cvtColor(roi, cv2.COLOR_BGR2GRAY)

        try:
            barcodes = decode(roi)
        except Exception as e:
            logger.error(f"Decode error: {e}")
            return None

        for barcode in barcodes:
            try:
                text = barcode.data.decode("utf-8").strip()
            except UnicodeDecodeError:
                logger.debug(f"Skipping non UTF-8 {barcode.type} payload")
                continue
            if text:
                return text

        return None
