"""Unit tests for reminder copy selection."""

from waterquest.core.models import ProgressBand
from waterquest.core.messages import (
    ESCALATION_MESSAGES,
    FIXED_MESSAGES,
    LATE_MESSAGES,
    MID_MESSAGES,
    MessageContext,
    TextGenerator,
    canned_message,
    fixed_message,
    progress_band,
    progress_fraction,
)


class TestProgress:
    """Tests for progress_fraction and progress_band."""

    def test_fraction(self):
        """Today over goal, never negative."""
        assert progress_fraction(600, 2400) == 0.25
        assert progress_fraction(3000, 2400) == 1.25
        assert progress_fraction(100, 0) == 0.0

    def test_band_boundaries(self):
        """Under 25% early, under 60% mid, otherwise late."""
        assert progress_band(0) == ProgressBand.EARLY
        assert progress_band(0.249) == ProgressBand.EARLY
        assert progress_band(0.25) == ProgressBand.MID
        assert progress_band(0.599) == ProgressBand.MID
        assert progress_band(0.6) == ProgressBand.LATE
        assert progress_band(1.5) == ProgressBand.LATE


class TestCannedMessage:
    """Tests for canned_message and fixed_message."""

    def test_band_pool(self):
        """The message comes from the band's pool."""
        assert canned_message(0.4) in MID_MESSAGES
        assert canned_message(0.9, index=2) == LATE_MESSAGES[2]

    def test_escalation_pool(self):
        """Escalations use their own pool regardless of progress."""
        assert canned_message(0.9, is_escalation=True) in ESCALATION_MESSAGES

    def test_rotation_wraps(self):
        """Index rotation wraps around the pool."""
        assert canned_message(0.4, index=len(MID_MESSAGES)) == MID_MESSAGES[0]
        assert fixed_message(len(FIXED_MESSAGES) + 1) == FIXED_MESSAGES[1]


class TestMessageContext:
    """Tests for MessageContext and the generator protocol."""

    def test_band(self):
        """Context exposes the progress band."""
        context = MessageContext(progress=0.7, today_total_ml=1680, goal_ml=2400)
        assert context.band == ProgressBand.LATE

    def test_protocol_check(self):
        """Any object with the two methods is a TextGenerator."""

        class Echo:
            def is_available(self):
                return True

            async def generate(self, context):
                return "hi"

        assert isinstance(Echo(), TextGenerator)
        assert not isinstance(object(), TextGenerator)
