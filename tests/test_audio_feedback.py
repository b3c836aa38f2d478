from __future__ import annotations

from poseoverlay.ui.audio_feedback import CUE_TONES, AudioFeedbackManager, cue_for
from poseoverlay.utils.structures import FeedbackEvent, Severity


def test_cue_mapping():
    assert cue_for(Severity.GOOD) == "success"
    assert cue_for(Severity.WARNING) == "alert"
    assert cue_for(Severity.ERROR) == "alert"
    assert cue_for(Severity.INFO) is None


def test_synthesized_tone_length_and_volume():
    manager = AudioFeedbackManager(enable_beep=False, beep_volume=0.5, sample_rate=8000)
    try:
        tone = manager.synthesize("success")
        assert tone.size == int(8000 * CUE_TONES["success"][1])
        assert abs(int(tone.max())) <= int(32767 * 0.5)
        assert manager.synthesize("unknown").size == 0
        manager.on_feedback(FeedbackEvent(Severity.GOOD, "Nice depth.", 0.0))
        assert manager.queue.empty()
    finally:
        manager.stop()
