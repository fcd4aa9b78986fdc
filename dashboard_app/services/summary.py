from collections import OrderedDict
from typing import Iterable, List

UNCATEGORIZED = "Uncategorized"


def summarize_by_category(transactions: Iterable[dict]) -> dict:
    """
    Per-day spending per primary category, the series the dashboard chart
    plots. Amounts are summed then reported as absolute values.

    Returns {"categories": [...], "series": [{"date", "totals": {cat: amount}}]}
    with dates ascending and categories in first-seen order.
    """
    categories: List[str] = []
    by_date = {}

    for tx in transactions:
        primary = (tx.get("categories") or [UNCATEGORIZED])[0]
        if primary not in categories:
            categories.append(primary)
        day = by_date.setdefault(tx["date"], {})
        day[primary] = day.get(primary, 0.0) + float(tx["amount"])

    series = []
    for day in sorted(by_date):
        totals = OrderedDict((cat, round(abs(by_date[day].get(cat, 0.0)), 2)) for cat in categories)
        series.append({"date": day, "totals": totals})

    return {"categories": categories, "series": series}
