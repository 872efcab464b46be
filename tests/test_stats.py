"""
Stats Aggregator Tests
======================

Tumbling windows driven by a fake clock.
"""

import pytest

from robostream.stream.stats import StatsAggregator


class TestStatsAggregator:
    """Tests for window flushing."""
    
    def test_frames_within_window_reported_at_next_flush(self, clock):
        """Verify frames in a window are reported at the next flush."""
        stats = StatsAggregator(clock=clock)
        
        for _ in range(25):
            clock.advance(0.03)
            assert stats.record_frame() is None
        
        clock.advance(0.5)
        snapshot = stats.record_frame()
        
        assert snapshot is not None
        assert snapshot.frames_received == 25
        assert stats.pending_count == 1
    
    def test_counter_resets_after_flush(self, clock):
        """Verify the counter restarts after a flush."""
        stats = StatsAggregator(clock=clock)
        stats.record_frame()
        clock.advance(1.0)
        
        snapshot = stats.flush_if_due()
        
        assert snapshot.frames_received == 1
        assert stats.pending_count == 0
        assert stats.window_start == clock.now
    
    def test_window_never_short(self, clock):
        """Verify a window never closes early."""
        stats = StatsAggregator(clock=clock)
        clock.advance(0.75)
        
        assert stats.flush_if_due() is None
        
        clock.advance(0.25)
        assert stats.flush_if_due() is not None
    
    def test_latency_is_window_overrun(self, clock):
        """Verify latency is the overrun past the window."""
        stats = StatsAggregator(clock=clock)
        clock.advance(1.25)
        
        snapshot = stats.record_frame()
        
        assert snapshot.avg_latency_ms == pytest.approx(250.0)
    
    def test_windows_are_tumbling(self, clock):
        """Verify windows do not overlap."""
        stats = StatsAggregator(clock=clock)
        
        counts = []
        for window in range(3):
            for _ in range(10):
                stats.record_frame()
            clock.advance(1.0)
            counts.append(stats.flush_if_due().frames_received)
        
        assert counts == [10, 10, 10]
        assert stats.snapshot().windows_closed == 3
    
    def test_drops_accumulate_until_reset(self, clock):
        """Verify drops accumulate until reset."""
        stats = StatsAggregator(clock=clock)
        stats.record_drop()
        stats.record_drop()
        clock.advance(1.0)
        stats.flush_if_due()
        
        assert stats.snapshot().dropped_frames == 2
        
        stats.reset()
        assert stats.snapshot().dropped_frames == 0
        assert stats.snapshot().frames_received == 0
    
    def test_invalid_window(self):
        """Verify a non-positive window is rejected."""
        with pytest.raises(ValueError):
            StatsAggregator(window_seconds=0)
    
    def test_reset_stamps_last_update(self, clock):
        """Verify reset marks the snapshot with the reset time."""
        stats = StatsAggregator(clock=clock)
        clock.advance(30.0)
        
        stats.reset()
        
        assert stats.snapshot().last_update == clock.now
        assert stats.snapshot().windows_closed == 0
