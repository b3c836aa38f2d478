from __future__ import annotations

from typing import Dict, List, Sequence, Tuple

import cv2
import numpy as np

from poseoverlay.utils.structures import FeedbackEvent, Severity

SEVERITY_COLORS: Dict[Severity, Tuple[int, int, int]] = {
    Severity.GOOD: (120, 220, 120),
    Severity.INFO: (200, 200, 200),
    Severity.WARNING: (0, 215, 255),
    Severity.ERROR: (0, 0, 255),
}

# Hershey fonts only cover ASCII
_ASCII_FALLBACK = {"—": "-", "°": " deg"}


def _ascii(text: str) -> str:
    for symbol, replacement in _ASCII_FALLBACK.items():
        text = text.replace(symbol, replacement)
    return text


class HudOverlay:
    """Text panels drawn over the composited frame: status, metrics and recent feedback."""

    def __init__(self, font_scale: float = 0.6, metric_font_scale: float = 0.5, margin: int = 16) -> None:
        self.font = cv2.FONT_HERSHEY_SIMPLEX
        self.font_scale = font_scale
        self.metric_font_scale = metric_font_scale
        self.margin = margin

    def draw(
        self,
        frame: np.ndarray,
        header: Sequence[str],
        metrics: Sequence[Tuple[str, str]],
        feedback: Sequence[FeedbackEvent],
    ) -> np.ndarray:
        self._draw_text_block(frame, list(header), self.font_scale, (255, 255, 255), 2, self.margin, self.margin)
        if metrics:
            y_offset = self.margin + self._line_height(self.font_scale) * len(header) + 12
            lines = [_ascii(f"{label}: {value}") for label, value in metrics]
            self._draw_text_block(frame, lines, self.metric_font_scale, (180, 220, 255), 1, self.margin, y_offset)
        self._draw_feedback(frame, feedback)
        return frame

    def _draw_feedback(self, frame: np.ndarray, feedback: Sequence[FeedbackEvent]) -> None:
        if not feedback:
            return
        line_height = self._line_height(self.font_scale)
        block_height = line_height * len(feedback) + 12
        block_top = frame.shape[0] - block_height - self.margin
        block_left = self.margin
        block_right = frame.shape[1] - self.margin
        bg = frame.copy()
        cv2.rectangle(bg, (block_left, block_top), (block_right, block_top + block_height), (10, 16, 30), -1)
        cv2.addWeighted(bg, 0.45, frame, 0.55, 0, frame)

        cursor_y = block_top + 10
        for event in feedback:
            color = SEVERITY_COLORS.get(event.severity, (200, 200, 200))
            cv2.putText(
                frame,
                _ascii(event.message),
                (block_left + 12, cursor_y + int(line_height * 0.75)),
                self.font,
                self.font_scale,
                color,
                1,
                cv2.LINE_AA,
            )
            cursor_y += line_height

    def _draw_text_block(
        self,
        frame: np.ndarray,
        lines: List[str],
        scale: float,
        color: Tuple[int, int, int],
        thickness: int,
        x: int,
        y: int,
    ) -> None:
        if not lines:
            return
        line_height = self._line_height(scale)
        max_width = max(cv2.getTextSize(line, self.font, scale, thickness)[0][0] for line in lines)
        bg = frame.copy()
        cv2.rectangle(bg, (x - 12, y - 8), (x + max_width + 24, y + line_height * len(lines) + 12), (10, 16, 30), -1)
        cv2.addWeighted(bg, 0.45, frame, 0.55, 0, frame)
        for idx, line in enumerate(lines):
            baseline = y + 12 + idx * line_height
            cv2.putText(frame, line, (x, baseline), self.font, scale, color, thickness, cv2.LINE_AA)

    def _line_height(self, scale: float) -> int:
        return max(18, int(26 * scale))
