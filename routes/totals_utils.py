"""
Document totals.

One formula, used everywhere a total is shown or exported:

    base      = quantity * rate
    discount  = base * discount% / 100
    taxable   = base - discount
    tax       = taxable * tax% / 100
    lineTotal = taxable + tax

Non-numeric or missing inputs count as 0 so a malformed row degrades
to a zero line instead of aborting a render or a save.
"""
from collections import namedtuple
from decimal import Decimal, ROUND_HALF_UP

from routes.utils import to_number

HUNDRED = Decimal('100')
CENTS = Decimal('0.01')

LineTotals = namedtuple('LineTotals', 'base discount taxable tax line_total')
DocumentTotals = namedtuple('DocumentTotals', 'subtotal discount_total taxable_total tax_total grand_total lines')


def _read(item, attr, key):
    if isinstance(item, dict):
        if key in item:
            return item[key]
        return item.get(attr)
    return getattr(item, attr, None)


def line_totals(item):
    """Totals for a single line. Accepts a model row or a camelCase/snake_case dict."""
    quantity = to_number(_read(item, 'quantity', 'quantity'))
    rate = to_number(_read(item, 'rate', 'rate'))
    tax_pct = to_number(_read(item, 'tax_percent', 'taxPercent'))
    discount_pct = to_number(_read(item, 'discount_percent', 'discountPercent'))

    base = quantity * rate
    discount = base * discount_pct / HUNDRED
    taxable = base - discount
    tax = taxable * tax_pct / HUNDRED
    return LineTotals(base, discount, taxable, tax, taxable + tax)


def calculate_totals(items):
    """Aggregate line totals. Sums are exact; rounding to cents happens once, at the end."""
    lines = [line_totals(item) for item in (items or [])]

    def _sum(field):
        total = sum((getattr(line, field) for line in lines), Decimal('0'))
        return total.quantize(CENTS, rounding=ROUND_HALF_UP)

    return DocumentTotals(
        subtotal=_sum('base'),
        discount_total=_sum('discount'),
        taxable_total=_sum('taxable'),
        tax_total=_sum('tax'),
        grand_total=_sum('line_total'),
        lines=lines,
    )
