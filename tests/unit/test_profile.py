"""
Tests for BehaviorProfile.
"""

import pytest

from resilient_agent.behavior import BehaviorProfile
from resilient_agent.config import BehaviorSettings


class TestGenerate:
    
    def test_seed_argument_wins(self):
        profile = BehaviorProfile.generate(BehaviorSettings(seed=1), seed=2)
        assert profile.seed == 2
    
    def test_seed_from_settings(self):
        profile = BehaviorProfile.generate(BehaviorSettings(seed=99))
        assert profile.seed == 99
    
    def test_random_seed_when_unset(self):
        seeds = {BehaviorProfile.generate().seed for _ in range(5)}
        assert len(seeds) > 1
    
    def test_parameters_copied_from_settings(self):
        settings = BehaviorSettings(seed=1, typing_delay_mean_ms=80, path_points=(5, 6))
        profile = BehaviorProfile.generate(settings)
        
        assert profile.typing_delay_mean_ms == 80
        assert profile.path_points == (5, 6)
    
    def test_profile_is_immutable(self):
        profile = BehaviorProfile(seed=1)
        with pytest.raises(AttributeError):
            profile.seed = 2


class TestTyping:
    
    def test_same_seed_same_delays(self):
        a = BehaviorProfile(seed=42)
        b = BehaviorProfile(seed=42)
        assert a.typing_delays("hello world") == b.typing_delays("hello world")
    
    def test_different_seeds_differ(self):
        assert BehaviorProfile(seed=1).typing_delays("hello world") != \
            BehaviorProfile(seed=2).typing_delays("hello world")
    
    def test_stream_varies_sequence(self):
        profile = BehaviorProfile(seed=42)
        assert profile.typing_delays("hello", stream=0) != profile.typing_delays("hello", stream=1)
    
    def test_one_keystroke_per_character(self):
        keystrokes = BehaviorProfile(seed=7).typing_sequence("abc")
        assert [k.char for k in keystrokes] == ["a", "b", "c"]
    
    def test_delays_respect_floor(self):
        profile = BehaviorProfile(seed=3, typing_delay_mean_ms=10, typing_delay_stddev_ms=50, typing_delay_min_ms=25)
        keystrokes = profile.typing_sequence("x" * 200)
        assert min(k.delay_ms for k in keystrokes) >= 25
    
    def test_thinking_pauses(self):
        always = BehaviorProfile(seed=5, thinking_probability=1.0, thinking_pause_ms=(300, 400))
        never = BehaviorProfile(seed=5, thinking_probability=0.0)
        
        assert all(300 <= k.thinking_ms <= 400 for k in always.typing_sequence("abcdef"))
        assert all(k.thinking_ms == 0.0 for k in never.typing_sequence("abcdef"))
    
    def test_empty_text(self):
        assert BehaviorProfile(seed=1).typing_delays("") == []


class TestRng:
    
    def test_rng_is_replayable(self):
        profile = BehaviorProfile(seed=11)
        first = [profile.rng("pointer", "click", 3).random() for _ in range(2)]
        assert first[0] == first[1]
    
    def test_purposes_are_independent(self):
        profile = BehaviorProfile(seed=11)
        assert profile.rng("pointer").random() != profile.rng("type").random()
    
    def test_dwell_and_step_ranges(self):
        profile = BehaviorProfile(seed=11)
        rng = profile.rng("pointer")
        for _ in range(50):
            assert 80 <= profile.dwell(rng) <= 250
            assert 2 <= profile.step_delay(rng) <= 8
