#!/usr/bin/env python3
"""
Parser fuzzer for the interface signature DSL.

Generates random valid signatures and mutated inputs to find parser bugs like:
- Crashes (exceptions other than ParseError)
- Hangs (infinite loops)
- Round-trip failures (canonical text that does not reparse to the same tree)
- Disagreement between the hand-written and the Lark-based parser

Usage:
    python -m abi_dsl.fuzz_parser [--iterations N] [--duration MINUTES] [--seed SEED] [--findings DIR]
"""

import argparse
import hashlib
import random
import re
import signal
import time
import traceback
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import List, Optional

from .dsl_ast import (
    Address, Array, Bool, Bytes, Cell, CellEntity, FixedArray, FixedBytes,
    Int, Map, OptionalType, ParamType, Ref, String, TokenAmount, Tuple, Uint,
    VERSION_TAGS, VarInt, VarUint, make_params,
)
from .dsl_errors import ParseError
from .dsl_parser import parse, parse_type
from .dsl_peg_parser import parse as peg_parse
from .dsl_signature import function_signature


class FuzzTimeout(Exception):
    pass


@contextmanager
def timeout(seconds):
    """Context manager for timeout on Unix systems."""
    def handler(signum, frame):
        raise FuzzTimeout(f"Timed out after {seconds} seconds")

    if hasattr(signal, 'SIGALRM'):
        old_handler = signal.signal(signal.SIGALRM, handler)
        signal.alarm(seconds)
        try:
            yield
        finally:
            signal.alarm(0)
            signal.signal(signal.SIGALRM, old_handler)
    else:
        # Windows fallback - no timeout
        yield


class Fuzzer:
    """Signature parser fuzzer."""

    SCALARS = [Bool(), Address(), Bytes(), Cell(), String(), TokenAmount()]
    FUNCTION_NAMES = ["transfer", "getBalance", "foo", "_x", "onBounce", "submitTransaction"]
    WHITESPACE = [" ", "\t", "\n", "\r\n", "\u2028", "\u200e"]
    PUNCTUATION = [",", "(", ")", "[", "]", "#", ".", "-", "0", "17"]

    # Seed corpus - known valid inputs
    SEED_CORPUS = [
        "",
        "uint256",
        "(uint256, addr)",
        "map(uint256, addr)[]",
        "optional(ref(cell))",
        "(bool, (uint8, string)[])[3]",
        "fixedbytes32, varuint16, varint32, token",
        "foo(uint32)(bool)v2",
        "transfer #4b1f3e2a (address,uint128)(bool) v2.3",
        "getBalance()(uint128)",
        "onBounce(map(address, (uint32, bool)))()v1",
    ]

    def __init__(self, seed=None, findings_dir: Optional[Path] = None, max_depth: int = 4):
        self.rng = random.Random(seed)
        self.max_depth = max_depth
        self.findings_dir = Path(findings_dir) if findings_dir else None
        self.stats = {
            "iterations": 0,
            "parse_ok": 0,
            "parse_error": 0,
            "round_trips": 0,
            "crashes": 0,
            "mismatches": 0,
            "timeouts": 0,
            "unique_crashes": set(),
        }
        self.start_time = None

        if self.findings_dir:
            self.findings_dir.mkdir(parents=True, exist_ok=True)

    # =========================================================================
    # Generation
    # =========================================================================

    def random_scalar(self) -> ParamType:
        choice = self.rng.randint(0, 6)
        if choice == 0:
            return Uint(self.rng.randint(1, 256))
        if choice == 1:
            return Int(self.rng.randint(1, 256))
        if choice == 2:
            return self.rng.choice([VarUint, VarInt])(self.rng.choice([16, 32]))
        if choice == 3:
            return FixedBytes(self.rng.randint(1, 32))
        return self.rng.choice(self.SCALARS)

    def random_map_key(self) -> ParamType:
        return self.rng.choice([
            Uint(self.rng.randint(1, 256)),
            Int(self.rng.randint(1, 256)),
            Address(),
        ])

    def random_type(self, depth: int = 0) -> ParamType:
        """Random valid type tree with at most `max_depth` nested frames."""
        if depth >= self.max_depth or self.rng.random() < 0.4:
            kind = self.random_scalar()
        else:
            choice = self.rng.randint(0, 3)
            if choice == 0:
                members = [self.random_type(depth + 1) for _ in range(self.rng.randint(1, 4))]
                kind = Tuple(make_params(members))
            elif choice == 1:
                kind = OptionalType(self.random_type(depth + 1))
            elif choice == 2:
                kind = Ref(self.random_type(depth + 1))
            else:
                kind = Map(self.random_map_key(), self.random_type(depth + 1))

        while self.rng.random() < 0.2:
            if self.rng.random() < 0.5:
                kind = Array(kind)
            else:
                kind = FixedArray(kind, self.rng.randint(1, 10))
        return kind

    def random_types(self, max_count: int = 4) -> List[ParamType]:
        return [self.random_type() for _ in range(self.rng.randint(0, max_count))]

    def random_function(self) -> str:
        """Random valid function signature text."""
        name = self.rng.choice(self.FUNCTION_NAMES)
        inputs = ",".join(k.signature() for k in self.random_types())
        outputs = ",".join(k.signature() for k in self.random_types())
        tag = self.rng.choice([""] + list(VERSION_TAGS))
        explicit = f"#{self.rng.randint(0, 0xFFFFFFFF):x}" if self.rng.random() < 0.2 else ""
        return f"{name}{explicit}({inputs})({outputs}){tag}"

    def generate_random(self) -> str:
        """Random text built from DSL fragments, mostly invalid."""
        parts = []
        for _ in range(self.rng.randint(1, 12)):
            choice = self.rng.random()
            if choice < 0.4:
                parts.append(self.rng.choice(["uint", "int", "u", "i", "varuint", "fixedbytes",
                                              "optional", "ref", "map", "tuple", "bool",
                                              "addr", "token", "v2", "v2.1"]))
                if self.rng.random() < 0.5:
                    parts.append(str(self.rng.randint(0, 300)))
            elif choice < 0.7:
                parts.append(self.rng.choice(self.PUNCTUATION))
            elif choice < 0.9:
                parts.append(self.rng.choice(self.WHITESPACE))
            else:
                parts.append(self.rng.choice(self.FUNCTION_NAMES))
        return "".join(parts)

    # =========================================================================
    # Mutation
    # =========================================================================

    def mutate(self, input_str: str) -> str:
        """Mutate an input string."""
        mutations = [
            self._mutate_insert_random,
            self._mutate_delete_chunk,
            self._mutate_repeat_chunk,
            self._mutate_flip_char,
            self._mutate_insert_special,
            self._mutate_boundary_numbers,
        ]

        mutation = self.rng.choice(mutations)
        return mutation(input_str)

    def _mutate_insert_random(self, s: str) -> str:
        """Insert DSL fragments."""
        pos = self.rng.randint(0, len(s))
        chars = self.rng.choice([
            self.rng.choice(self.PUNCTUATION),
            self.rng.choice(self.WHITESPACE),
            self.rng.choice(self.FUNCTION_NAMES),
            self.random_scalar().signature(),
        ])
        return s[:pos] + chars + s[pos:]

    def _mutate_delete_chunk(self, s: str) -> str:
        """Delete a random chunk."""
        if len(s) < 2:
            return s
        start = self.rng.randint(0, len(s) - 1)
        end = self.rng.randint(start + 1, min(start + 20, len(s)))
        return s[:start] + s[end:]

    def _mutate_repeat_chunk(self, s: str) -> str:
        """Repeat a chunk."""
        if len(s) < 2:
            return s * 2
        start = self.rng.randint(0, len(s) - 1)
        end = self.rng.randint(start + 1, min(start + 10, len(s)))
        chunk = s[start:end]
        return s[:end] + chunk * self.rng.randint(1, 5) + s[end:]

    def _mutate_flip_char(self, s: str) -> str:
        """Flip a random character."""
        if not s:
            return s
        pos = self.rng.randint(0, len(s) - 1)
        new_char = chr(ord(s[pos]) ^ self.rng.randint(1, 127))
        return s[:pos] + new_char + s[pos+1:]

    def _mutate_insert_special(self, s: str) -> str:
        """Insert special/edge case characters."""
        pos = self.rng.randint(0, len(s))
        special = self.rng.choice([
            "\x00",
            "\xff",
            "\u00e9",
            "\U0001f389",
            "\u2029",
            "(" * 20,
            "optional(" * 17,
            "[]" * 5,
        ])
        return s[:pos] + special + s[pos:]

    def _mutate_boundary_numbers(self, s: str) -> str:
        """Replace numbers with boundary values."""
        def replace(m):
            if self.rng.random() < 0.5:
                return self.rng.choice([
                    "0", "1", "16", "32", "33", "255", "256", "257",
                    "4294967295", "99999999999999999999",
                ])
            return m.group(0)
        return re.sub(r'\d+', replace, s)

    # =========================================================================
    # Checks
    # =========================================================================

    def save_finding(self, input_str: str, error: Exception, category: str):
        """Record a finding; written to disk when a findings directory is set."""
        hash_val = hashlib.md5(input_str.encode('utf-8', errors='replace')).hexdigest()[:8]

        if hash_val in self.stats["unique_crashes"]:
            return

        self.stats["unique_crashes"].add(hash_val)

        if self.findings_dir is None:
            return

        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        filename = self.findings_dir / f"{category}_{timestamp}_{hash_val}.txt"

        with open(filename, 'w', encoding='utf-8') as f:
            f.write(f"Category: {category}\n")
            f.write(f"Error: {type(error).__name__}: {error}\n")
            f.write(f"Timestamp: {timestamp}\n")
            f.write(f"Input length: {len(input_str)}\n")
            f.write("\n--- Input ---\n")
            f.write(input_str)
            f.write("\n\n--- Traceback ---\n")
            f.write(traceback.format_exc())

        print(f"\n[!] Saved finding: {filename}")

    def test_input(self, input_str: str) -> bool:
        """Test a single input against the hand-written parser.

        Returns True if interesting (crash/timeout).
        """
        try:
            with timeout(5):
                parse(input_str)
            self.stats["parse_ok"] += 1
            return False
        except ParseError:
            # Normal parse rejection
            self.stats["parse_error"] += 1
            return False
        except FuzzTimeout as e:
            self.stats["timeouts"] += 1
            self.save_finding(input_str, e, "timeout")
            return True
        except Exception as e:
            # Unexpected crash!
            self.stats["crashes"] += 1
            self.save_finding(input_str, e, "crash")
            return True

    def check_round_trip(self) -> bool:
        """Generate a valid input and check both parsers reproduce it.

        Returns True if interesting (mismatch/crash).
        """
        if self.rng.random() < 0.5:
            kind = self.random_type()
            text = kind.signature()
            checks = [
                (lambda: parse_type(text), kind),
                (lambda: _cell_params(parse(text)), _expected_params([kind])),
                (lambda: _cell_params(peg_parse(text)), _expected_params([kind])),
            ]
        else:
            text = self.random_function()
            checks = [
                (lambda: _signature(parse(text)), None),
                (lambda: _signature(peg_parse(text)), None),
            ]

        self.stats["round_trips"] += 1
        results = []
        for run, expected in checks:
            try:
                result = run()
            except Exception as e:
                self.stats["crashes"] += 1
                self.save_finding(text, e, "crash")
                return True
            if expected is not None and result != expected:
                self.stats["mismatches"] += 1
                self.save_finding(text, AssertionError(f"{result!r} != {expected!r}"), "mismatch")
                return True
            results.append(result)

        # Functions have no expected value, only the two parsers to compare
        if expected is None and len(set(map(repr, results))) > 1:
            self.stats["mismatches"] += 1
            self.save_finding(text, AssertionError(f"parsers disagree: {results!r}"), "mismatch")
            return True
        return False

    # =========================================================================
    # Driver
    # =========================================================================

    def run(self, duration_minutes: float = None, iterations: int = None, quiet: bool = False):
        """Run the fuzzer until the time or iteration limit is reached."""
        self.start_time = time.time()
        end_time = self.start_time + (duration_minutes * 60) if duration_minutes else None

        if not quiet:
            print(f"Starting fuzzer (seed corpus: {len(self.SEED_CORPUS)} inputs)")
            print(f"Duration: {'unlimited' if not duration_minutes else f'{duration_minutes} minutes'}")
            print(f"Findings directory: {self.findings_dir or '(not saved)'}")
            print("-" * 60)

        corpus = list(self.SEED_CORPUS)

        try:
            while True:
                if end_time and time.time() > end_time:
                    break
                if iterations is not None and self.stats["iterations"] >= iterations:
                    break
                self.stats["iterations"] += 1

                strategy = self.rng.random()

                if strategy < 0.3:
                    self.check_round_trip()
                    continue
                elif strategy < 0.5:
                    input_str = self.generate_random()
                elif strategy < 0.9:
                    base = self.rng.choice(corpus)
                    input_str = self.mutate(base)
                    # Sometimes apply multiple mutations
                    for _ in range(self.rng.randint(0, 3)):
                        input_str = self.mutate(input_str)
                else:
                    input_str = self.rng.choice(corpus)

                interesting = self.test_input(input_str)

                if interesting or (self.rng.random() < 0.01 and len(input_str) < 1000):
                    corpus.append(input_str)
                    if len(corpus) > 1000:
                        corpus.pop(self.rng.randint(len(self.SEED_CORPUS), len(corpus) - 1))

                if not quiet and self.stats["iterations"] % 1000 == 0:
                    self.print_stats()

        except KeyboardInterrupt:
            print("\n\nInterrupted by user")

        if not quiet:
            print("\n" + "=" * 60)
            print("Final Statistics:")
            self.print_stats()
        return self.stats

    def print_stats(self):
        """Print current statistics."""
        elapsed = time.time() - self.start_time
        rate = self.stats["iterations"] / elapsed if elapsed > 0 else 0

        print(f"[{elapsed:.1f}s] "
              f"iterations={self.stats['iterations']} "
              f"({rate:.0f}/s) | "
              f"ok={self.stats['parse_ok']} "
              f"reject={self.stats['parse_error']} "
              f"round_trips={self.stats['round_trips']} | "
              f"crashes={self.stats['crashes']} "
              f"mismatches={self.stats['mismatches']} "
              f"timeouts={self.stats['timeouts']} "
              f"unique={len(self.stats['unique_crashes'])}")


def _expected_params(kinds: List[ParamType]):
    if len(kinds) == 1 and isinstance(kinds[0], Tuple):
        return list(kinds[0].params)
    return make_params(kinds)


def _cell_params(entity):
    if not isinstance(entity, CellEntity):
        raise AssertionError(f"expected a type list, got {entity!r}")
    return entity.params


def _signature(entity):
    return (
        function_signature(entity.name, entity.inputs, entity.outputs, entity.version),
        entity.input_id,
        entity.output_id,
    )


def main():
    parser = argparse.ArgumentParser(description="Fuzz the signature parsers")
    parser.add_argument("--duration", type=float, default=None,
                        help="Duration in minutes (default: run forever)")
    parser.add_argument("--iterations", type=int, default=None,
                        help="Stop after this many iterations")
    parser.add_argument("--seed", type=int, default=None,
                        help="Random seed for reproducibility")
    parser.add_argument("--findings", default=None,
                        help="Directory to save findings to")
    args = parser.parse_args()

    seed = args.seed if args.seed is not None else int(time.time())
    print(f"Random seed: {seed}")

    fuzzer = Fuzzer(seed=seed, findings_dir=args.findings)
    fuzzer.run(duration_minutes=args.duration, iterations=args.iterations)


if __name__ == "__main__":
    main()
