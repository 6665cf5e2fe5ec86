from __future__ import annotations

import pytest

from parlay_amm.errors import AuthorizationError, ParlayValidationError
from parlay_amm.events import ParametersChanged
from parlay_amm.fixed import mul, to_fixed
from parlay_amm.config import SgpFeeRow


def test_admin_calls_require_operator(engine):
	with pytest.raises(AuthorizationError) as exc:
		engine.set_parameters("alice", min_stake=50.0)
	assert exc.value.reason == "not_operator"
	with pytest.raises(AuthorizationError):
		engine.set_sgp_fee_entry("alice", 9004, 0, 10002, None, None, to_fixed(0.8))
	with pytest.raises(AuthorizationError):
		engine.set_fee_override("alice", "alice", 0)
	assert engine.bus.events == []


def test_set_parameters(engine):
	engine.set_parameters("owner", min_stake=50.0, protocol_fee=0.04)
	assert engine.config.min_stake == 50.0
	assert engine.quote(["g1", "g2"], [0, 0], to_fixed(100)).net_stake == to_fixed(94)
	assert not engine.can_admit(["g1", "g2"], [0, 0], to_fixed(20))
	changed = engine.bus.of_type(ParametersChanged)[0]
	assert changed.caller == "owner"
	assert changed.changes == {"min_stake": 50.0, "protocol_fee": 0.04}


def test_set_parameters_rejects_bad_input(engine):
	with pytest.raises(ParlayValidationError) as exc:
		engine.set_parameters("owner", no_such_knob=1)
	assert exc.value.reason == "unknown_parameter"
	with pytest.raises(ParlayValidationError) as exc:
		engine.set_parameters("owner", min_stake="lots")
	assert exc.value.reason == "invalid_parameter"
	assert engine.config.min_stake == 10.0


def test_replacing_sgp_fee_rows(engine):
	engine.set_parameters("owner", sgp_fees=[SgpFeeRow(tag1=9011, tag_a=0, tag_b=10002, fee=0.9)])
	assert engine.quote(["s1", "s1-total"], [0, 0], to_fixed(100)).admissible
	q = engine.quote(["g1", "g1-total"], [0, 0], to_fixed(100))
	assert q.reason == "ineligible_pairing"


def test_sgp_fee_entry(engine):
	engine.set_sgp_fee_entry("owner", 9004, 0, 10002, None, None, 0)
	q = engine.quote(["g1", "g1-total"], [0, 0], to_fixed(100))
	assert not q.admissible
	assert q.reason == "ineligible_pairing"

	# position specific row takes precedence over the disabled fallback
	engine.set_sgp_fee_entry("owner", 9004, 0, 10002, 0, 0, to_fixed(0.8))
	q = engine.quote(["g1", "g1-total"], [0, 0], to_fixed(100))
	assert q.admissible
	plain = mul(to_fixed(0.5), to_fixed(0.5))
	fee = mul(to_fixed(0.8), to_fixed(0.99))
	assert abs(q.raw_price - plain * 10**18 // fee) <= 1
	assert not engine.quote(["g1", "g1-total"], [1, 0], to_fixed(100)).admissible

	with pytest.raises(ParlayValidationError):
		engine.set_sgp_fee_entry("owner", 9004, 0, 10002, None, None, -1)


def test_fee_override_bounds(engine):
	with pytest.raises(ParlayValidationError) as exc:
		engine.set_fee_override("owner", "alice", to_fixed(0.97))
	assert exc.value.reason == "invalid_fee"
	engine.set_fee_override("owner", "alice", to_fixed(0.01))
	assert engine.quote(["g1", "g2"], [0, 0], to_fixed(100), "alice").net_stake == to_fixed(96)


def test_calibration_file_parameter(engine, tmp_path):
	p = tmp_path / "cal.yaml"
	p.write_text(
		"rules:\n"
		"  - {line: total, a_lo: 0.0, a_hi: 1.01, b_lo: 0.0, b_hi: 1.01, action: plain}\n",
		encoding="utf-8",
	)
	engine.set_parameters("owner", calibration_file=str(p))
	q = engine.quote(["g1", "g1-total"], [0, 0], to_fixed(100))
	assert q.raw_price == to_fixed(0.25)
