from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone, tzinfo
from threading import Lock
from time import time
from typing import Callable, Iterator, Optional

__author__ = ['j4hangir', 'vd2org']
__all__ = [
    'Quark', 'QuarkConfig', 'QuarkGenerator', 'LockedQuarkGenerator', 'InvalidConfiguration',
    'SystemClock', 'OffsetClock', 'TOTAL_BITS', 'BIT_BUDGET', 'DEFAULT_MACHINE_ID_BITS', 'DEFAULT_SEQUENCE_BITS',
]

logger = logging.getLogger(__name__)

TOTAL_BITS = 64
BIT_BUDGET = 22  # machine id + sequence
DEFAULT_MACHINE_ID_BITS = 10
DEFAULT_SEQUENCE_BITS = 12
MAX_CLOCK_OFFSET = 10_000  # ms

Clock = Callable[[], int]


class InvalidConfiguration(ValueError):
    """Raised in strict mode when a generator or clock is configured with values it would otherwise correct."""


def _mask(bits: int) -> int:
    return (1 << bits) - 1


@dataclass(frozen=True)
class QuarkConfig:
    """Bit layout and epoch of a generator.

    Invalid values are corrected in place unless ``strict`` is set, in which case
    :class:`InvalidConfiguration` is raised instead. Negative ``machine_id`` and negative
    bit widths are always clamped to zero.
    """
    machine_id: int
    epoch: int = 0
    machine_id_bits: int = DEFAULT_MACHINE_ID_BITS
    sequence_bits: int = DEFAULT_SEQUENCE_BITS
    strict: bool = False

    def __post_init__(self):
        if self.machine_id < 0:
            self._correct('machine_id', 0)

        if self.epoch < 0:
            if self.strict:
                raise InvalidConfiguration("Epoch cannot be negative.")
            logger.warning("Negative epoch %d replaced with 0", self.epoch)
            self._correct('epoch', 0)

        if self.machine_id_bits < 0:
            self._correct('machine_id_bits', 0)
        if self.sequence_bits < 0:
            self._correct('sequence_bits', 0)

        if self.machine_id_bits + self.sequence_bits > BIT_BUDGET:
            if self.strict:
                raise InvalidConfiguration(f"Machine id and sequence bits cannot exceed {BIT_BUDGET} in total.")
            logger.warning(
                "Bit allocation %d+%d exceeds %d, falling back to %d+%d",
                self.machine_id_bits, self.sequence_bits, BIT_BUDGET,
                DEFAULT_MACHINE_ID_BITS, DEFAULT_SEQUENCE_BITS,
            )
            self._correct('machine_id_bits', DEFAULT_MACHINE_ID_BITS)
            self._correct('sequence_bits', DEFAULT_SEQUENCE_BITS)

    def _correct(self, name: str, value: int):
        object.__setattr__(self, name, value)

    @property
    def timestamp_bits(self) -> int:
        return TOTAL_BITS - self.machine_id_bits - self.sequence_bits

    @property
    def timestamp_shift(self) -> int:
        return self.machine_id_bits + self.sequence_bits

    @property
    def max_timestamp(self) -> int:
        return _mask(self.timestamp_bits)

    @property
    def max_machine_id(self) -> int:
        return _mask(self.machine_id_bits)

    @property
    def max_sequence(self) -> int:
        return _mask(self.sequence_bits)


@dataclass(frozen=True)
class Quark:
    """A decoded identifier. ``timestamp`` is in Unix milliseconds, epoch already added back."""
    timestamp: int
    machine_id: int
    sequence: int

    @property
    def seconds(self) -> float:
        return self.timestamp / 1000

    @property
    def datetime(self) -> datetime:
        return datetime.fromtimestamp(self.seconds, tz=timezone.utc)

    def datetime_tz(self, tz: tzinfo = None) -> datetime:
        return datetime.fromtimestamp(self.seconds, tz=tz)


class SystemClock:
    """Wall clock in Unix milliseconds."""

    def __call__(self) -> int:
        return int(time() * 1000)


class OffsetClock:
    """A clock corrected by an offset, e.g. one obtained from a time server.

    The offset is applied to every reading of ``base``. :meth:`sync` recomputes it from a
    trusted reference reading; fetching that reading is left to the caller.
    """

    def __init__(self, offset: int = 0, *, base: Optional[Clock] = None, strict: bool = False):
        if not -MAX_CLOCK_OFFSET <= offset <= MAX_CLOCK_OFFSET:
            if strict:
                raise InvalidConfiguration(f"Clock offset must be between {-MAX_CLOCK_OFFSET} and {MAX_CLOCK_OFFSET} ms.")
            logger.warning("Clock offset %d ms out of range, using 0", offset)
            offset = 0

        self._base = base or SystemClock()
        self.offset = offset

    def sync(self, reference: int) -> int:
        self.offset = reference - self._base()
        logger.debug("Clock offset set to %d ms", self.offset)
        return self.offset

    def __call__(self) -> int:
        return round(self._base() + self.offset)


class QuarkGenerator:
    """Generates sortable 64-bit identifiers laid out as ``[timestamp][machine id][sequence]``.

    Each call reads the clock once. Calls within the same millisecond, or after the clock
    went backwards, reuse the last timestamp and bump the sequence; when the sequence wraps
    the timestamp is pushed one millisecond ahead of the last one.

    ``generate`` is not atomic. Sharing one instance between threads needs external locking
    (see :class:`LockedQuarkGenerator`) or one generator per thread with distinct machine ids.
    The ``extract*`` methods are pure and can be called from anywhere.
    """

    def __init__(self, machine_id: int, *, epoch: int = 0, machine_id_bits: int = DEFAULT_MACHINE_ID_BITS,
                 sequence_bits: int = DEFAULT_SEQUENCE_BITS, strict: bool = False, clock: Clock = None):
        config = QuarkConfig(machine_id, epoch=epoch, machine_id_bits=machine_id_bits,
                             sequence_bits=sequence_bits, strict=strict)

        self._config = config
        self._clock = clock or SystemClock()
        self._inf = (config.machine_id & config.max_machine_id) << config.sequence_bits
        self._last_ts = -1
        self._seq = 0

    @classmethod
    def from_config(cls, config: QuarkConfig, *, clock: Clock = None) -> QuarkGenerator:
        return cls(config.machine_id, epoch=config.epoch, machine_id_bits=config.machine_id_bits,
                   sequence_bits=config.sequence_bits, strict=config.strict, clock=clock)

    @property
    def config(self) -> QuarkConfig:
        return self._config

    @property
    def machine_id(self) -> int:
        return self._config.machine_id

    @property
    def epoch(self) -> int:
        return self._config.epoch

    @property
    def machine_id_bits(self) -> int:
        return self._config.machine_id_bits

    @property
    def sequence_bits(self) -> int:
        return self._config.sequence_bits

    def generate(self) -> int:
        config = self._config
        current = max(self._clock() - config.epoch, 1)

        if current <= self._last_ts:
            current = self._last_ts
            seq = (self._seq + 1) & config.max_sequence
        else:
            seq = 0

        if seq == 0 and current <= self._last_ts:
            current = self._last_ts + 1
            logger.debug("Sequence exhausted, borrowing timestamp %d", current)

        if current > config.max_timestamp:
            raise OverflowError("Maximum timestamp reached for the selected epoch. Unable to generate more IDs.")

        self._last_ts = current
        self._seq = seq

        return (current << config.timestamp_shift) | self._inf | seq

    def __iter__(self) -> Iterator[int]:
        return self

    def __next__(self) -> int:
        return self.generate()

    def extract(self, quark: int) -> Quark:
        return Quark(
            timestamp=self.extract_timestamp(quark),
            machine_id=self.extract_machine_id(quark),
            sequence=self.extract_sequence(quark),
        )

    def extract_timestamp(self, quark: int) -> int:
        return (quark >> self._config.timestamp_shift) + self._config.epoch

    def extract_date(self, quark: int) -> datetime:
        return datetime.fromtimestamp(self.extract_timestamp(quark) / 1000, tz=timezone.utc)

    def extract_machine_id(self, quark: int) -> int:
        return (quark >> self._config.sequence_bits) & self._config.max_machine_id

    def extract_sequence(self, quark: int) -> int:
        return quark & self._config.max_sequence


class LockedQuarkGenerator(QuarkGenerator):
    """A :class:`QuarkGenerator` safe to share between threads."""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self._lock = Lock()

    def generate(self) -> int:
        with self._lock:
            return super().generate()


if __name__ == '__main__':
    gen = QuarkGenerator(1)
    print(next(gen))
