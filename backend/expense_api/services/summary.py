from decimal import ROUND_HALF_UP, Decimal

from ..models import CENT
from ..schemas import SummaryCounts, SummaryResponse

HUNDRED = Decimal("100")


def usage_percent(total_income: Decimal, total_expense: Decimal) -> Decimal:
    if total_income <= 0:
        return Decimal("0.00")
    ratio = min(HUNDRED, total_expense * HUNDRED / total_income)
    return ratio.quantize(CENT, rounding=ROUND_HALF_UP)


def build_summary(
    total_income: Decimal,
    total_expense: Decimal,
    income_count: int,
    expense_count: int,
) -> SummaryResponse:
    # floats only at the response boundary
    balance = total_income - total_expense
    return SummaryResponse(
        totalIncome=float(total_income),
        totalExpense=float(total_expense),
        balance=float(balance),
        usagePercent=float(usage_percent(total_income, total_expense)),
        counts=SummaryCounts(income=income_count, expense=expense_count),
    )
