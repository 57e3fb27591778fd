import logging

import pytest

from quark import InvalidConfiguration, QuarkConfig, QuarkGenerator


def test_defaults():
    config = QuarkConfig(1)
    assert (config.machine_id, config.epoch) == (1, 0)
    assert (config.machine_id_bits, config.sequence_bits) == (10, 12)
    assert config.timestamp_bits == 42
    assert config.max_machine_id == 1023
    assert config.max_sequence == 4095


def test_custom_allocation():
    gen = QuarkGenerator(1, machine_id_bits=8, sequence_bits=14)
    assert (gen.machine_id_bits, gen.sequence_bits) == (8, 14)


def test_custom_epoch():
    gen = QuarkGenerator(1, epoch=1609459200000)
    assert gen.epoch == 1609459200000


def test_negative_machine_id_clamped_in_both_modes():
    assert QuarkConfig(-1).machine_id == 0
    assert QuarkConfig(-1, strict=True).machine_id == 0


def test_negative_epoch_lenient(caplog):
    with caplog.at_level(logging.WARNING, logger='quark'):
        config = QuarkConfig(1, epoch=-1000)
    assert config.epoch == 0
    assert 'epoch' in caplog.text


def test_negative_epoch_strict():
    with pytest.raises(InvalidConfiguration):
        QuarkConfig(1, epoch=-1000, strict=True)


def test_invalid_configuration_is_value_error():
    with pytest.raises(ValueError):
        QuarkGenerator(1, epoch=-1, strict=True)


def test_bit_budget_strict():
    with pytest.raises(InvalidConfiguration):
        QuarkGenerator(1, machine_id_bits=15, sequence_bits=10, strict=True)
    with pytest.raises(InvalidConfiguration):
        QuarkGenerator(1, machine_id_bits=12, sequence_bits=12, strict=True)


def test_bit_budget_lenient_resets_both():
    gen = QuarkGenerator(1, machine_id_bits=15, sequence_bits=10)
    assert (gen.machine_id_bits, gen.sequence_bits) == (10, 12)


def test_bit_budget_within_limit():
    gen = QuarkGenerator(1, machine_id_bits=10, sequence_bits=10, strict=True)
    assert (gen.machine_id_bits, gen.sequence_bits) == (10, 10)


def test_negative_widths_clamped_before_budget():
    config = QuarkConfig(1, machine_id_bits=-5, sequence_bits=22, strict=True)
    assert (config.machine_id_bits, config.sequence_bits) == (0, 22)
    assert config.timestamp_bits == 42


def test_from_config(clock):
    config = QuarkConfig(3, epoch=1609459200000, machine_id_bits=5, sequence_bits=10)
    gen = QuarkGenerator.from_config(config, clock=clock)
    assert gen.config == config
    assert gen.extract(gen.generate()).machine_id == 3


def test_config_is_immutable():
    config = QuarkConfig(1)
    with pytest.raises(AttributeError):
        config.machine_id = 2
