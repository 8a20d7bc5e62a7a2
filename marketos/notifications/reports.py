"""
Daily and weekly report texts.
"""

from marketos.analytics.schemas import KPISummary

NBSP = "\u00a0"


def format_currency(amount: float) -> str:
    """
    Russian rouble formatting: space-grouped thousands, comma decimals,
    at most two fraction digits.

    Example:
        >>> format_currency(1234567.5)
        '1\xa0234\xa0567,5\xa0₽'
    """
    sign = "-" if amount < 0 else ""
    whole, fraction = f"{abs(amount):,.2f}".split(".")
    fraction = fraction.rstrip("0")
    text = whole.replace(",", NBSP)
    if fraction:
        text = f"{text},{fraction}"
    return f"{sign}{text}{NBSP}₽"


def _kpi_lines(kpi: KPISummary) -> str:
    return (
        f"💰 Выручка: {format_currency(kpi.revenue)}\n"
        f"📦 Заказы: {kpi.orders}\n"
        f"💵 Прибыль: {format_currency(kpi.profit)}\n"
        f"📈 ROAS: {kpi.roas:.2f}\n"
        f"📊 Маржа: {kpi.margin * 100:.1f}%"
    )


def daily_report(kpi: KPISummary) -> str:
    return "📊 Ежедневный отчет MarketOS\n\n" + _kpi_lines(kpi)


def weekly_report(kpi: KPISummary, dead_stock_count: int, hidden_loss_total: float) -> str:
    return (
        "📊 Еженедельный отчет MarketOS\n\n"
        + _kpi_lines(kpi)
        + "\n\n"
        + f"🧊 Замороженных товаров: {dead_stock_count}\n"
        + f"💸 Скрытые потери: {format_currency(hidden_loss_total)}"
    )
