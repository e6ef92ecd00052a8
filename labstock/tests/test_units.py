"""
Tests for unit registry, conversion and dose arithmetic.
"""

from decimal import Decimal

import pytest

from labstock.enums import NomenclatureCategory, UnitKind
from labstock.exceptions import IncompatibleUnitKind, MissingConversionContext, ValidationError
from labstock.units import (
    UNITS,
    Concentration,
    ConversionContext,
    Quantity,
    activity_concentration,
    approx_equal,
    convert,
    default_unit_for_category,
    format_quantity,
    get_unit,
    infer_kind,
    molar_concentration,
    to_base,
    to_moles,
    total_activity,
    units_for_kind,
    volume_for_molar_concentration,
)


class TestRegistry:
    """Tests for unit lookup."""

    def test_known_codes(self):
        assert get_unit('ml').kind == UnitKind.VOLUME
        assert get_unit('mmol').scale == Decimal('0.001')
        assert get_unit('IU').kind == UnitKind.ACTIVITY

    def test_cyrillic_aliases(self):
        assert get_unit('мл') is UNITS['ml']
        assert get_unit('мкг') is UNITS['ug']
        assert get_unit('шт') is UNITS['pcs']
        assert get_unit('ЕД') is UNITS['U']

    def test_unknown_unit_rejected(self):
        with pytest.raises(ValidationError) as exc:
            get_unit('cup')

        assert exc.value.code == 'UNKNOWN_UNIT'

    def test_infer_kind_from_free_text(self):
        assert infer_kind('миллилитр') == UnitKind.VOLUME
        assert infer_kind('mmol/vial') == UnitKind.MOLAR
        assert infer_kind('vial') is None

    def test_units_for_kind_smallest_first(self):
        assert [u.code for u in units_for_kind(UnitKind.MASS)] == ['ug', 'mg', 'g', 'kg']

    def test_category_defaults(self):
        assert default_unit_for_category(NomenclatureCategory.SERUM).code == 'ml'
        assert default_unit_for_category(NomenclatureCategory.ENZYME).code == 'U'
        assert default_unit_for_category(NomenclatureCategory.CONSUMABLE).code == 'pcs'

    def test_to_base(self):
        assert to_base(250, 'mg') == Decimal('0.250')


class TestConvert:
    """Tests for convert()."""

    def test_same_kind(self):
        assert convert('1.5', 'l', 'ml') == Decimal('1500')
        assert convert(250, 'ul', 'ml') == Decimal('0.25')
        assert convert(2, 'g', 'mg') == Decimal('2000')

    def test_same_unit_is_identity(self):
        assert convert(Decimal('3.14159'), 'ml', 'ml') == Decimal('3.14159')

    @pytest.mark.parametrize('a,b', [
        ('ug', 'kg'), ('ml', 'ul'), ('l', 'ul'), ('umol', 'mol'), ('mg', 'g'),
    ])
    def test_round_trip(self, a, b):
        x = Decimal('123.456789')
        assert approx_equal(convert(convert(x, a, b), b, a), x)

    def test_count_to_volume_has_no_bridge(self):
        with pytest.raises(IncompatibleUnitKind) as exc:
            convert(1, 'pcs', 'ml')

        assert exc.value.code == 'INCOMPATIBLE_UNIT_KIND'
        assert not isinstance(exc.value, MissingConversionContext)

    def test_pack_is_not_expanded_into_pieces(self):
        assert convert(2, 'pack', 'pcs') == Decimal('2')

    def test_bridge_without_context(self):
        with pytest.raises(MissingConversionContext) as exc:
            convert(10, 'mg', 'mmol')

        assert exc.value.missing == 'molecular_weight'

    def test_missing_context_is_incompatible_kind(self):
        with pytest.raises(IncompatibleUnitKind):
            convert(1, 'ml', 'g')

    def test_mass_to_molar(self):
        context = ConversionContext(molecular_weight='180')
        assert convert(360, 'mg', 'mmol', context) == Decimal('2')

    def test_mass_to_volume(self):
        context = ConversionContext(density='1.25')
        assert convert(5, 'g', 'ml', context) == Decimal('4')

    def test_molar_to_volume(self):
        # 1 mmol from a 0.5 M stock is 2 ml
        context = ConversionContext(molarity='0.5')
        assert convert(1, 'mmol', 'ml', context) == Decimal('2')

    def test_activity_to_mass(self):
        context = ConversionContext(specific_activity=200)
        assert convert(1000, 'U', 'mg', context) == Decimal('5')

    def test_cross_kind_round_trip(self):
        context = ConversionContext(molecular_weight='58.44')
        x = Decimal('17.3')
        assert approx_equal(convert(convert(x, 'mg', 'umol', context), 'umol', 'mg', context), x)

    def test_context_rejects_non_positive_factor(self):
        with pytest.raises(ValidationError):
            ConversionContext(density=0)

    def test_bool_is_not_a_quantity(self):
        with pytest.raises(ValidationError):
            convert(True, 'ml', 'l')


class TestQuantity:
    """Tests for Quantity and Concentration."""

    def test_parse(self):
        q = Quantity.parse('1,5 мл')

        assert q.amount == Decimal('1.5')
        assert q.unit.code == 'ml'
        assert str(q) == '1.5 ml'

    def test_parse_garbage(self):
        with pytest.raises(ValidationError):
            Quantity.parse('a lot')

    def test_to(self):
        assert Quantity(150, 'ml').to('l') == Quantity(Decimal('0.15'), 'l')

    @pytest.mark.parametrize('concentration,expected', [
        (Concentration(10, '%'), Quantity(50, 'ml')),
        (Concentration(100, 'x'), Quantity(5, 'ml')),
        (Concentration(2, 'mM'), Quantity(1, 'mmol')),
        (Concentration('0.1', 'mg/ml'), Quantity(50, 'mg')),
        (Concentration(5, 'U/ml'), Quantity(2500, 'U')),
    ])
    def test_dose_for_500_ml(self, concentration, expected):
        assert concentration.dose_for(Quantity(500, 'ml')) == expected

    def test_unknown_concentration_unit(self):
        with pytest.raises(ValidationError):
            Concentration(1, 'ppm')


class TestHelpers:
    """Tests for molar / activity helpers and formatting."""

    def test_to_moles(self):
        assert to_moles(180, 'mg', molecular_weight=180) == Decimal('0.001')

    def test_volume_for_molar_concentration(self):
        # 1 mmol to 10 mM needs 100 ml
        assert volume_for_molar_concentration(1, 'mmol', 10) == Decimal('100')

    def test_molar_concentration(self):
        assert molar_concentration(1, 'mmol', 100) == Decimal('10')

    def test_activity(self):
        assert total_activity(2, 'mg', 150) == Decimal('300')
        assert activity_concentration(2, 'mg', 150, 60) == Decimal('5')

    @pytest.mark.parametrize('amount,unit,expected', [
        (1500, 'ul', '1.5 ml'),
        (250, 'ml', '250 ml'),
        (2500, 'mg', '2.5 g'),
        (Decimal('0.5'), 'umol', '0.5 umol'),
        (3, 'pcs', '3 pcs'),
    ])
    def test_format_quantity(self, amount, unit, expected):
        assert format_quantity(amount, unit) == expected
