from __future__ import annotations

from typing import Iterable, Optional

from pricewatch.utils.types import Alert, Evaluation, ListedAlert, PriceQuote


def fmt_price(px: float) -> str:
    # sub-cent tokens need the extra precision
    return f"{px:.8f}" if px < 0.01 else f"{px:.2f}"


def fmt_market_cap(mc: float) -> str:
    if mc >= 1_000_000:
        return f"${mc / 1_000_000:.2f}M"
    return f"${mc / 1_000:.2f}K"


def fmt_signed_pct(pct: float) -> str:
    return f"{'+' if pct > 0 else ''}{pct:.2f}%"


_MD_SPECIAL = ("_", "*", "`", "[")


def escape_md(text: str) -> str:
    """Escape legacy Telegram Markdown entity characters in free text."""
    for ch in _MD_SPECIAL:
        text = text.replace(ch, "\\" + ch)
    return text


def _token_label(alert: Alert) -> str:
    d = alert.display
    name = d.token_name or d.token_symbol or alert.lookup_key
    label = f"{name} ({d.token_symbol})" if d.token_symbol else name
    return escape_md(label)


def _chain(alert: Alert) -> str:
    return escape_md((alert.display.chain_id or "?").upper())


def describe_condition(alert: Alert) -> str:
    """Short condition label used in listings, e.g. `above $1.5` or `-10%`."""
    if alert.condition == "above":
        return f"above ${alert.target_value:g}"
    if alert.condition == "below":
        return f"below ${alert.target_value:g}"
    return f"{'+' if alert.target_value > 0 else ''}{alert.target_value:g}%"


def describe_condition_long(alert: Alert) -> str:
    """Sentence fragment used in confirmations: `price goes ABOVE $1.5`."""
    if alert.condition == "above":
        return f"price goes ABOVE ${alert.target_value:g}"
    if alert.condition == "below":
        return f"price drops BELOW ${alert.target_value:g}"
    direction = "rises" if alert.target_value > 0 else "drops"
    return f"price {direction} {abs(alert.target_value):g}%"


def format_trigger_message(alert: Alert, quote: PriceQuote, ev: Evaluation) -> str:
    """
    Telegram (Markdown) text sent when `alert` fires at `quote.price_usd`.
    Market cap and 24h change lines are appended when the lookup carried them.
    """
    px = quote.price_usd
    label = _token_label(alert)
    pct = ev.pct_change
    head = "*Price Alert Triggered*\n\n"

    if alert.condition == "above":
        body = (
            f"{label} has surpassed your target price.\n\n"
            f"Current Price: ${fmt_price(px)}\n"
            f"Target Price: ${alert.target_value:g}"
        )
        if pct is not None:
            body += f"\nPrice Change: {fmt_signed_pct(pct)}"
    elif alert.condition == "below":
        body = (
            f"{label} has fallen below your target price.\n\n"
            f"Current Price: ${fmt_price(px)}\n"
            f"Target Price: ${alert.target_value:g}"
        )
        if pct is not None:
            body += f"\nPrice Change: {fmt_signed_pct(pct)}"
    else:
        pct = pct or 0.0
        moved = f"gained {pct:.2f}%" if alert.target_value > 0 else f"dropped {abs(pct):.2f}%"
        goal = "Target Gain" if alert.target_value > 0 else "Target Drop"
        body = (
            f"{label} has {moved}\n\n"
            f"Current Price: ${fmt_price(px)}\n"
            f"Starting Price: ${fmt_price(alert.reference_price)}\n"
            f"{goal}: {'+' if alert.target_value > 0 else ''}{alert.target_value:g}%"
        )

    extra = ""
    if quote.market_cap:
        extra += f"\nMarket Cap: {fmt_market_cap(quote.market_cap)}"
    if quote.change_24h:
        extra += f"\n24h Change: {fmt_signed_pct(quote.change_24h)}"

    return f"{head}{body}{extra}\n\nChain: {_chain(alert)}"


def format_alert_list(items: Iterable[ListedAlert]) -> str:
    items = list(items)
    if not items:
        return "You currently have no active price alerts configured."
    blocks = []
    for i, it in enumerate(items, start=1):
        a = it.alert
        price_line = f"${fmt_price(it.current_price)}"
        if it.stale:
            price_line += " (stale, live price unavailable)"
        blocks.append(
            f"{i}. {_token_label(a)}\n"
            f"   Chain: {_chain(a)}\n"
            f"   Current: {price_line}\n"
            f"   Alert: {describe_condition(a)}\n"
            f"   ID: `{a.id}`"
        )
    return f"*Active Price Alerts* ({len(items)})\n\n" + "\n\n".join(blocks)


def format_created_message(alert: Alert) -> str:
    return (
        "*Price Alert Configured*\n\n"
        f"{_token_label(alert)}\n\n"
        f"You will be notified when {describe_condition_long(alert)}\n\n"
        f"Current Price: ${fmt_price(alert.reference_price)}\n"
        f"Alert ID: `{alert.id}`"
    )


def format_cancelled_message(alert: Alert) -> str:
    return f"*Alert Canceled*\n\n{_token_label(alert)}\nAlert ID: `{alert.id}`"


def format_welcome(chat_id: str) -> str:
    return (
        "*Welcome to pricewatch!*\n\n"
        f"Your Chat ID: `{chat_id}`\n\n"
        "This ID is required when setting up price alerts. "
        "You'll receive a notification here whenever one of your price targets is reached.\n\n"
        "*Available Commands:*\n"
        "/start - Display this welcome message\n"
        "/myalerts - View all your active alerts\n"
        "/refresh - Force check all alerts immediately\n"
        "/cancel <alert id> - Cancel one of your alerts"
    )


def format_refresh_result(ok: bool, triggered: Optional[int] = None) -> str:
    if not ok:
        return "An error occurred while checking alerts. Please try again in a few moments."
    msg = "Alert check completed successfully."
    if triggered:
        msg += f" {triggered} alert{'s' if triggered != 1 else ''} triggered."
    else:
        msg += " You will be notified if any price targets are reached."
    return msg
