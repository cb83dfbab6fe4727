"""
Range Proof Parameter Tests
"""

import pytest

from ringct.errors import ErrorCode, ValidationError
from ringct.wallet.range_params import (
    RangeProofParams,
    estimate_proof_size,
    select_range_proof_parameters,
    standard_range_proof_params,
    validate_range_proof_params,
)


class TestSelectParameters:
    """Tests for select_range_proof_parameters."""

    def test_zero_value(self):
        """Test zero gets exponent below 5 and 32 to 36 bits."""
        for _ in range(100):
            params = select_range_proof_parameters(0)
            assert 0 <= params.exponent < 5
            assert 32 <= params.min_bits <= 36
            assert params.min_value == 0

    def test_no_trailing_zeros(self):
        params = select_range_proof_parameters(123457)
        assert params.exponent == 0
        assert params.min_bits == 32

    def test_trailing_zeros(self):
        """Test exponent lies between half and all of the trailing zeros."""
        for _ in range(50):
            params = select_range_proof_parameters(1_000_000)
            assert 3 <= params.exponent <= 5

    def test_wide_mantissa(self):
        """Test mantissas wider than 32 bits raise min bits to a multiple of 4."""
        value = (1 << 40) + 1
        params = select_range_proof_parameters(value)
        assert params.exponent == 0
        assert params.min_bits == 44

    def test_huge_value(self):
        params = select_range_proof_parameters((1 << 63) - 1)
        assert params.min_bits == 63

    def test_always_valid(self):
        for value in (0, 1, 10, 999, 10**8, 123 * 10**12, (1 << 62) + 7):
            validate_range_proof_params(select_range_proof_parameters(value))


class TestValidateParameters:
    """Tests for validate_range_proof_params."""

    @pytest.mark.parametrize("params", [
        RangeProofParams(exponent=19),
        RangeProofParams(exponent=-1),
        RangeProofParams(min_bits=65),
        RangeProofParams(min_value=-1),
    ])
    def test_rejected(self, params):
        with pytest.raises(ValidationError) as exc:
            validate_range_proof_params(params)
        assert exc.value.code == ErrorCode.INVALID_RANGE_PARAMS

    def test_standard(self):
        params = standard_range_proof_params()
        validate_range_proof_params(params)
        assert params.exponent == 2

    def test_estimated_size_grows_with_bits(self):
        small = estimate_proof_size(RangeProofParams(min_bits=32))
        large = estimate_proof_size(RangeProofParams(min_bits=64))
        assert large > small
