"""
Measurement units — registry, conversion and dose arithmetic.

Pure functions, no database access. Quantities are Decimal so the same
inputs always give the same outputs (audit reproducibility).

Examples:
    convert('1.5', 'l', 'ml')                       # Decimal('1500')
    convert(10, 'mg', 'mmol', ConversionContext(molecular_weight=180.16))
    Quantity.parse('150 ml').to('l')                # 0.15 l
    Concentration(10, '%').dose_for(Quantity(500, 'ml'))   # 50 ml
    format_quantity(1500, 'ul')                     # '1.5 ml'
"""

import re
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

from labstock.enums import NomenclatureCategory, UnitKind
from labstock.exceptions import IncompatibleUnitKind, MissingConversionContext, ValidationError


# Relative tolerance for A -> B -> A round trips
ROUND_TRIP_TOLERANCE = Decimal('1e-9')


@dataclass(frozen=True)
class MeasurementUnit:
    """A unit of one kind with a linear scale to the kind's base unit."""

    code: str
    kind: UnitKind
    scale: Decimal

    def __str__(self) -> str:
        return self.code


_REGISTRY = (
    MeasurementUnit('ug', UnitKind.MASS, Decimal('0.000001')),
    MeasurementUnit('mg', UnitKind.MASS, Decimal('0.001')),
    MeasurementUnit('g', UnitKind.MASS, Decimal('1')),
    MeasurementUnit('kg', UnitKind.MASS, Decimal('1000')),
    MeasurementUnit('ul', UnitKind.VOLUME, Decimal('0.001')),
    MeasurementUnit('ml', UnitKind.VOLUME, Decimal('1')),
    MeasurementUnit('l', UnitKind.VOLUME, Decimal('1000')),
    MeasurementUnit('pcs', UnitKind.COUNT, Decimal('1')),
    # packs are never expanded into pieces
    MeasurementUnit('pack', UnitKind.COUNT, Decimal('1')),
    MeasurementUnit('U', UnitKind.ACTIVITY, Decimal('1')),
    MeasurementUnit('IU', UnitKind.ACTIVITY, Decimal('1')),
    MeasurementUnit('umol', UnitKind.MOLAR, Decimal('0.000001')),
    MeasurementUnit('mmol', UnitKind.MOLAR, Decimal('0.001')),
    MeasurementUnit('mol', UnitKind.MOLAR, Decimal('1')),
)


UNITS: dict[str, MeasurementUnit] = {unit.code: unit for unit in _REGISTRY}


ALIASES = {
    'мкг': 'ug', 'µg': 'ug', 'мг': 'mg', 'г': 'g', 'кг': 'kg',
    'мкл': 'ul', 'µl': 'ul', 'мл': 'ml', 'л': 'l', 'L': 'l', 'mL': 'ml', 'uL': 'ul',
    'шт': 'pcs', 'уп': 'pack',
    'ЕД': 'U', 'МЕ': 'IU',
    'мкмоль': 'umol', 'µmol': 'umol', 'ммоль': 'mmol', 'моль': 'mol',
}


CATEGORY_DEFAULT_UNITS = {
    NomenclatureCategory.MEDIUM: 'ml',
    NomenclatureCategory.SERUM: 'ml',
    NomenclatureCategory.BUFFER: 'ml',
    NomenclatureCategory.SUPPLEMENT: 'ml',
    NomenclatureCategory.ENZYME: 'U',
    NomenclatureCategory.REAGENT: 'mg',
    NomenclatureCategory.CONSUMABLE: 'pcs',
    NomenclatureCategory.EQUIP: 'pcs',
}


# Fuzzy hints for free-text units; MOLAR first since 'моль' contains 'л'
_KIND_HINTS = (
    (UnitKind.MOLAR, ('моль', 'mol')),
    (UnitKind.MASS, ('мкг', 'мг', 'кг', 'грамм', 'gram', 'г', 'mg', 'ug', 'kg')),
    (UnitKind.VOLUME, ('мкл', 'мл', 'литр', 'liter', 'litre', 'л', 'ml', 'ul')),
    (UnitKind.COUNT, ('шт', 'уп', 'piece', 'pack', 'pcs')),
    (UnitKind.ACTIVITY, ('ед', 'ме', 'единиц', 'unit')),
)


def to_decimal(value) -> Decimal:
    """Coerce int/float/str/Decimal to Decimal (floats via their repr)."""
    if isinstance(value, Decimal):
        return value
    if isinstance(value, bool):
        raise ValidationError('INVALID_QUANTITY', amount=value)
    if isinstance(value, float):
        value = repr(value)
    try:
        return Decimal(str(value).strip().replace(',', '.'))
    except (InvalidOperation, ValueError):
        raise ValidationError('INVALID_QUANTITY', amount=value) from None


def get_unit(unit) -> MeasurementUnit:
    """
    Resolve a unit code (or alias) to its MeasurementUnit.

    Raises:
        ValidationError('UNKNOWN_UNIT'): code is not in the registry
    """
    if isinstance(unit, MeasurementUnit):
        return unit
    code = str(unit).strip()
    code = ALIASES.get(code, code)
    try:
        return UNITS[code]
    except KeyError:
        raise ValidationError('UNKNOWN_UNIT', unit=str(unit)) from None


def get_kind(unit) -> UnitKind | None:
    """Kind of a known unit code, None when unknown."""
    try:
        return get_unit(unit).kind
    except ValidationError:
        return None


def infer_kind(text: str) -> UnitKind | None:
    """
    Guess the kind of a free-text unit ("миллилитр", "mg/vial").

    Used when importing legacy records whose unit was typed by hand.
    """
    direct = get_kind(text)
    if direct is not None:
        return direct
    lower = text.lower().strip()
    for kind, hints in _KIND_HINTS:
        if any(hint in lower for hint in hints):
            return kind
    return None


def units_for_kind(kind: UnitKind) -> list[MeasurementUnit]:
    """Registry units of a kind, smallest first."""
    return [unit for unit in _REGISTRY if unit.kind == kind]


def default_unit_for_category(category) -> MeasurementUnit:
    return get_unit(CATEGORY_DEFAULT_UNITS.get(category, 'pcs'))


def to_base(amount, unit) -> Decimal:
    """Amount expressed in the base unit of its kind (g, ml, pcs, U, mol)."""
    return to_decimal(amount) * get_unit(unit).scale


def approx_equal(a, b, rel: Decimal = ROUND_TRIP_TOLERANCE) -> bool:
    a, b = to_decimal(a), to_decimal(b)
    if a == b:
        return True
    return abs(a - b) <= rel * max(abs(a), abs(b))


# ══════════════════════════════════════════════════════════════
# CROSS-KIND BRIDGES
# ══════════════════════════════════════════════════════════════


@dataclass(frozen=True)
class ConversionContext:
    """
    Caller-supplied factors that bridge unit kinds.

    molecular_weight: g/mol        (MASS <-> MOLAR)
    density: g/ml                  (MASS <-> VOLUME)
    molarity: mol/l of the stock   (MOLAR <-> VOLUME)
    specific_activity: U/mg        (MASS <-> ACTIVITY)
    """

    molecular_weight: Decimal | None = None
    density: Decimal | None = None
    molarity: Decimal | None = None
    specific_activity: Decimal | None = None

    def __post_init__(self):
        for name in ('molecular_weight', 'density', 'molarity', 'specific_activity'):
            value = getattr(self, name)
            if value is None:
                continue
            value = to_decimal(value)
            if value <= 0:
                raise ValidationError('INVALID_REQUEST', message=f'{name} must be positive', **{name: value})
            object.__setattr__(self, name, value)


BRIDGES: dict[frozenset, str] = {
    frozenset({UnitKind.MASS, UnitKind.MOLAR}): 'molecular_weight',
    frozenset({UnitKind.MASS, UnitKind.VOLUME}): 'density',
    frozenset({UnitKind.MOLAR, UnitKind.VOLUME}): 'molarity',
    frozenset({UnitKind.MASS, UnitKind.ACTIVITY}): 'specific_activity',
}


def _bridge(base_amount: Decimal, source: UnitKind, target: UnitKind, factor: Decimal) -> Decimal:
    """Convert between base units of two kinds (g, ml, mol, U)."""
    if source == UnitKind.MASS and target == UnitKind.MOLAR:
        return base_amount / factor
    if source == UnitKind.MOLAR and target == UnitKind.MASS:
        return base_amount * factor
    if source == UnitKind.MASS and target == UnitKind.VOLUME:
        return base_amount / factor
    if source == UnitKind.VOLUME and target == UnitKind.MASS:
        return base_amount * factor
    if source == UnitKind.MOLAR and target == UnitKind.VOLUME:
        return base_amount / factor * 1000
    if source == UnitKind.VOLUME and target == UnitKind.MOLAR:
        return base_amount / 1000 * factor
    if source == UnitKind.MASS and target == UnitKind.ACTIVITY:
        return base_amount * 1000 * factor
    # ACTIVITY -> MASS
    return base_amount / factor / 1000


def convert(amount, from_unit, to_unit, context: ConversionContext | None = None) -> Decimal:
    """
    Convert amount between units.

    Same kind: amount * from.scale / to.scale.
    Different kind: only through a bridge whose factor is in ``context``.

    Raises:
        IncompatibleUnitKind: no bridge is defined for the pair
        MissingConversionContext: a bridge exists but its factor is missing
        ValidationError: unknown unit or malformed amount
    """
    source = get_unit(from_unit)
    target = get_unit(to_unit)
    value = to_decimal(amount)

    if source.kind == target.kind:
        if source.scale == target.scale:
            return value
        return value * source.scale / target.scale

    attr = BRIDGES.get(frozenset({source.kind, target.kind}))
    if attr is None:
        raise IncompatibleUnitKind(
            from_unit=source.code,
            to_unit=target.code,
            from_kind=str(source.kind),
            to_kind=str(target.kind),
        )

    factor = getattr(context, attr, None) if context is not None else None
    if factor is None:
        raise MissingConversionContext(
            message=f'Converting {source.code} to {target.code} requires {attr}',
            missing=attr,
            from_unit=source.code,
            to_unit=target.code,
        )

    base = _bridge(value * source.scale, source.kind, target.kind, factor)
    return base / target.scale


# ══════════════════════════════════════════════════════════════
# QUANTITY
# ══════════════════════════════════════════════════════════════


_QUANTITY_RE = re.compile(r'^\s*([-+]?\d+(?:[.,]\d+)?)\s*(\S+)\s*$')


@dataclass(frozen=True)
class Quantity:
    """An amount tagged with its unit, validated at construction."""

    amount: Decimal
    unit: MeasurementUnit

    def __post_init__(self):
        object.__setattr__(self, 'amount', to_decimal(self.amount))
        object.__setattr__(self, 'unit', get_unit(self.unit))

    @classmethod
    def parse(cls, text: str) -> 'Quantity':
        """Parse '150 ml', '1,5мл', '3 pcs'."""
        match = _QUANTITY_RE.match(str(text))
        if not match:
            raise ValidationError('INVALID_QUANTITY', amount=text)
        return cls(match.group(1), match.group(2))

    @property
    def kind(self) -> UnitKind:
        return self.unit.kind

    def to(self, unit, context: ConversionContext | None = None) -> 'Quantity':
        target = get_unit(unit)
        return Quantity(convert(self.amount, self.unit, target, context), target)

    def __str__(self) -> str:
        return f"{_plain(self.amount)} {self.unit.code}"


def _plain(value: Decimal) -> str:
    if value == value.to_integral_value():
        return str(value.quantize(Decimal('1')))
    return format(value.normalize(), 'f')


# ══════════════════════════════════════════════════════════════
# CONCENTRATIONS
# ══════════════════════════════════════════════════════════════


CONCENTRATION_UNITS = ('x', '%', 'mg/ml', 'ug/ml', 'mM', 'M', 'U/ml')


CONCENTRATION_ALIASES = {
    '×': 'x', 'X': 'x',
    'мг/мл': 'mg/ml', 'мкг/мл': 'ug/ml',
    'мМ': 'mM', 'М': 'M',
    'ЕД/мл': 'U/ml',
}


@dataclass(frozen=True)
class Concentration:
    """
    Concentration of a component in a final volume.

    'x' is the fold of the stock solution (100x stock at 1x working).
    '%' is volume/volume.
    """

    value: Decimal
    unit: str

    def __post_init__(self):
        unit = CONCENTRATION_ALIASES.get(self.unit, self.unit)
        if unit not in CONCENTRATION_UNITS:
            raise ValidationError('UNKNOWN_UNIT', unit=self.unit)
        value = to_decimal(self.value)
        if value <= 0:
            raise ValidationError('INVALID_QUANTITY', amount=value)
        object.__setattr__(self, 'unit', unit)
        object.__setattr__(self, 'value', value)

    def dose_for(self, volume: Quantity) -> Quantity:
        """Amount of component needed for ``volume`` of final solution."""
        ml = convert(volume.amount, volume.unit, 'ml')
        if self.unit == 'x':
            return Quantity(ml / self.value, 'ml')
        if self.unit == '%':
            return Quantity(ml * self.value / 100, 'ml')
        if self.unit == 'mg/ml':
            return Quantity(ml * self.value, 'mg')
        if self.unit == 'ug/ml':
            return Quantity(ml * self.value, 'ug')
        if self.unit == 'mM':
            return Quantity(ml * self.value / 1000, 'mmol')
        if self.unit == 'M':
            return Quantity(ml * self.value / 1000, 'mol')
        return Quantity(ml * self.value, 'U')

    def __str__(self) -> str:
        return f"{_plain(self.value)}{self.unit}"


# ══════════════════════════════════════════════════════════════
# MOLAR AND ACTIVITY HELPERS
# ══════════════════════════════════════════════════════════════


def to_moles(amount, unit, molecular_weight=None) -> Decimal:
    """Substance amount in mol; mass units need molecular_weight (g/mol)."""
    context = ConversionContext(molecular_weight=molecular_weight)
    return convert(amount, unit, 'mol', context)


def volume_for_molar_concentration(amount, unit, target_mm, molecular_weight=None) -> Decimal:
    """Solvent volume (ml) that dissolves ``amount`` to ``target_mm`` millimolar."""
    target = to_decimal(target_mm)
    if target <= 0:
        raise ValidationError('INVALID_QUANTITY', amount=target)
    mmol = to_moles(amount, unit, molecular_weight) * 1000
    return mmol / target * 1000


def molar_concentration(amount, unit, volume_ml, molecular_weight=None) -> Decimal:
    """Resulting concentration (mM) of ``amount`` dissolved in ``volume_ml``."""
    volume = to_decimal(volume_ml)
    if volume <= 0:
        raise ValidationError('INVALID_QUANTITY', amount=volume)
    mmol = to_moles(amount, unit, molecular_weight) * 1000
    return mmol / (volume / 1000)


def total_activity(amount, unit, specific_activity) -> Decimal:
    """Total activity (U) of a mass given its specific activity (U/mg)."""
    context = ConversionContext(specific_activity=specific_activity)
    return convert(amount, unit, 'U', context)


def volume_for_activity_concentration(amount, unit, specific_activity, target_u_per_ml) -> Decimal:
    target = to_decimal(target_u_per_ml)
    if target <= 0:
        raise ValidationError('INVALID_QUANTITY', amount=target)
    return total_activity(amount, unit, specific_activity) / target


def activity_concentration(amount, unit, specific_activity, volume_ml) -> Decimal:
    volume = to_decimal(volume_ml)
    if volume <= 0:
        raise ValidationError('INVALID_QUANTITY', amount=volume)
    return total_activity(amount, unit, specific_activity) / volume


# ══════════════════════════════════════════════════════════════
# FORMATTING
# ══════════════════════════════════════════════════════════════


def format_quantity(amount, unit) -> str:
    """
    Human-readable quantity, switching to the largest unit of the kind
    that keeps the value >= 1.

    format_quantity(1500, 'ul') -> '1.5 ml'
    format_quantity(3, 'pcs')   -> '3 pcs'
    """
    source = get_unit(unit)
    value = to_decimal(amount)
    if source.kind in (UnitKind.COUNT, UnitKind.ACTIVITY):
        return f"{_plain(value)} {source.code}"

    base = value * source.scale
    candidates = units_for_kind(source.kind)
    for index in range(len(candidates) - 1, -1, -1):
        candidate = candidates[index]
        converted = base / candidate.scale
        if abs(converted) >= 1 or index == 0:
            rounded = converted.quantize(Decimal('0.01'), rounding=ROUND_HALF_UP)
            return f"{_plain(rounded)} {candidate.code}"
    return f"{_plain(value)} {source.code}"  # pragma: no cover
