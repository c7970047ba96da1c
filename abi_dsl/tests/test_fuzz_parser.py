"""
Short fuzzing runs over both parsers.
"""

import pytest

from abi_dsl.fuzz_parser import Fuzzer


class TestFuzzer:
    """Tests for the parser fuzzer."""

    @pytest.mark.parametrize("seed", [1, 2, 3])
    def test_no_findings(self, seed):
        stats = Fuzzer(seed=seed).run(iterations=300, quiet=True)
        assert stats["iterations"] == 300
        assert stats["crashes"] == 0
        assert stats["mismatches"] == 0
        assert stats["timeouts"] == 0

    def test_round_trips(self):
        fuzzer = Fuzzer(seed=7)
        for _ in range(50):
            assert fuzzer.check_round_trip() is False
        assert fuzzer.stats["round_trips"] == 50

    def test_seed_corpus_parses(self):
        fuzzer = Fuzzer(seed=0)
        for text in fuzzer.SEED_CORPUS:
            assert fuzzer.test_input(text) is False
        assert fuzzer.stats["parse_ok"] == len(fuzzer.SEED_CORPUS)

    def test_random_types_are_valid(self):
        fuzzer = Fuzzer(seed=11, max_depth=6)
        for _ in range(100):
            text = fuzzer.random_type().signature()
            assert fuzzer.test_input(text) is False
        assert fuzzer.stats["parse_error"] == 0

    def test_deterministic(self):
        a = Fuzzer(seed=5)
        b = Fuzzer(seed=5)
        assert [a.generate_random() for _ in range(20)] == [b.generate_random() for _ in range(20)]

    def test_findings_saved(self, tmp_path):
        fuzzer = Fuzzer(seed=0, findings_dir=tmp_path / "findings")
        fuzzer.save_finding("uint8(", RuntimeError("boom"), "crash")
        (path,) = (tmp_path / "findings").iterdir()
        assert path.name.startswith("crash_")
        assert "RuntimeError: boom" in path.read_text()
