"""
Notification copy: template catalog, pluralization and currency helpers.

Templates only reference derived values computed by the builder; nothing
here touches raw payloads.
"""

from __future__ import annotations

import math
import re
from typing import Any, Dict, Optional

# ======================================================================
# Template catalog
# ======================================================================

NOTIFICATION_TEMPLATES: Dict[str, Dict[str, str]] = {
    "follow": {
        "display": "{username} just followed!",
        "tts": "{ttsUsername} just followed",
        "log": "New follower: {username}",
    },
    "share": {
        "display": "{username} shared the stream",
        "tts": "{ttsUsername} shared the stream",
        "log": "Share from {username}",
    },
    "raid": {
        "display": "Incoming raid from {username} with {viewerCount} viewers!",
        "tts": "Incoming raid from {ttsUsername} with {formattedViewerCount}",
        "log": "Incoming raid from {username} with {viewerCount} viewers!",
    },
    "envelope": {
        "display": "{username} sent a treasure chest!",
        "tts": "{ttsShortUsername} sent a treasure chest",
        "log": "Treasure chest from {username}",
        "logWithCoins": "Treasure chest from {username}: {formattedCoins}",
    },
    "greeting": {
        "display": "Welcome, {username}! 👋",
        "tts": "Hi {ttsUsername}",
        "log": "Greeting: {username}",
    },
    "farewell": {
        "display": "Goodbye, {username}! 👋",
        "tts": "Goodbye {ttsUsername}",
        "log": "Farewell: {username}",
    },
    "command": {
        "display": "{username} used command {command}",
        "tts": "{ttsUsername} used command {commandName}",
        "log": "Command {command} triggered by {username}",
    },
    "redemption": {
        "display": "{username} redeemed {rewardTitle}!",
        "displayWithCost": "{username} redeemed {rewardTitle} ({rewardCost} points)!",
        "tts": "{ttsUsername} redeemed {rewardTitle}",
        "log": "Redemption by {username}: {rewardTitle}",
        "logWithCost": "Redemption by {username}: {rewardTitle} ({rewardCost} points)",
    },
    "chat-message": {
        "display": "{username}: {message}",
        "tts": "{ttsUsername} says {message}",
        "log": "Chat from {username}: {message}",
    },
    "gift": {
        "displayBits": "{username} sent {formattedBits} {giftType}{messageSuffix}",
        "displayFiat": "{username} sent a {formattedAmount} {giftType}{messageSuffix}",
        "displayCoins": "{username} sent {countPrefix}{giftLabel}{coinSuffix}",
        "ttsBits": "{ttsUsername} sent {ttsBits} {giftType}{ttsMessageSuffix}",
        "ttsFiat": "{ttsUsername} sent a {ttsAmount} {giftType}{ttsMessageSuffix}",
        "ttsCoins": "{ttsUsername} sent {ttsCountPrefix}{ttsGiftLabel}{ttsCoinSuffix}",
        "logBits": "Bits: {formattedBits} from {username}",
        "logFiat": "Gift from {username}: {giftType} ({formattedAmount})",
        "logCoins": "TikTok Gift: {countPrefix}{giftType}{coinSuffix} from {username}",
    },
    "giftpaypiggy": {
        "display": "{username} gifted a {paypiggyNoun}!{giftTierSuffix}",
        "displayMany": "{username} gifted {giftCount} {paypiggyNounPlural}!{giftTierSuffix}",
        "tts": "{ttsUsername} gifted a {paypiggyNoun}",
        "ttsMany": "{ttsUsername} gifted {giftCount} {paypiggyNounPlural}",
        "log": "{username} gifted a {paypiggyNoun}!{giftTierSuffix}",
        "logMany": "{username} gifted {giftCount} {paypiggyNounPlural}!{giftTierSuffix}",
    },
    "error": {
        "display": "Error processing {errorLabel} from {username}",
        "displayPayment": "Error processing {errorLabel} from {username} (payment details unavailable)",
        "tts": "Error processing {errorLabel} from {ttsUsername}",
        "log": "Error processing {errorLabel} from {username}",
    },
}

# Paypiggy copy differs per variant, including where the suffix sits.
PAYPIGGY_TEMPLATES: Dict[str, Dict[str, str]] = {
    "subscriber": {
        "display": "{username} {paypiggyAction}!{paypiggySuffix}",
        "displayResub": "{username} {paypiggyResubAction}{renewalMonthsText}!{paypiggySuffix}",
        "tts": "{ttsUsername} {paypiggyActionTts}{paypiggySuffix}",
        "ttsResub": "{ttsUsername} {paypiggyResubActionTts}{renewalMonthsText}",
        "log": "New subscriber: {username}!{paypiggyLogSuffix}",
        "logResub": "Subscriber renewal: {username}{logMonthsText}{paypiggyLogSuffix}",
    },
    "membership": {
        "display": "{username} {paypiggyAction}!{paypiggySuffix}",
        "displayResub": "{username} {paypiggyResubAction}{membershipMonthsText}{paypiggySuffix}!",
        "tts": "{ttsUsername} {paypiggyActionTts}{paypiggySuffix}",
        "ttsResub": "{ttsUsername} {paypiggyResubActionTts}{membershipMonthsText}{paypiggySuffix}",
        "log": "New member: {username}!{paypiggyLogSuffix}",
        "logResub": "Member renewal: {username}{logMonthsText}{paypiggyLogSuffix}",
    },
    "superfan": {
        "display": "{username} {paypiggyAction}!",
        "displayResub": "{username} {paypiggyResubAction}{renewalMonthsText}!",
        "tts": "{ttsUsername} {paypiggyActionTts}",
        "ttsResub": "{ttsUsername} {paypiggyResubActionTts}{renewalMonthsText}",
        "log": "New SuperFan: {username}",
        "logResub": "SuperFan renewal: {username}{logMonthsText}",
    },
}


def resolve_paypiggy_copy(platform: str, *, is_superfan: bool = False) -> Dict[str, str]:
    """Platform and superfan aware wording for subscription-like events."""
    if is_superfan:
        return {
            "paypiggyVariant": "superfan",
            "paypiggyAction": "became a SuperFan",
            "paypiggyActionTts": "became a SuperFan",
            "paypiggyResubAction": "renewed SuperFan",
            "paypiggyResubActionTts": "renewed SuperFan",
            "paypiggyNoun": "SuperFan",
            "paypiggyNounPlural": "SuperFans",
        }

    if (platform or "").lower() == "youtube":
        return {
            "paypiggyVariant": "membership",
            "paypiggyAction": "just became a member",
            "paypiggyActionTts": "just became a member",
            "paypiggyResubAction": "renewed membership",
            "paypiggyResubActionTts": "renewed membership",
            "paypiggyNoun": "membership",
            "paypiggyNounPlural": "memberships",
        }

    return {
        "paypiggyVariant": "subscriber",
        "paypiggyAction": "just subscribed",
        "paypiggyActionTts": "just subscribed",
        "paypiggyResubAction": "renewed subscription",
        "paypiggyResubActionTts": "renewed subscription",
        "paypiggyNoun": "subscription",
        "paypiggyNounPlural": "subscriptions",
    }


# ======================================================================
# Numbers
# ======================================================================

def to_number(value: Any) -> Optional[float]:
    """Finite float for numbers and numeric strings, otherwise None."""
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, (int, float)):
        return float(value) if math.isfinite(value) else None
    if isinstance(value, str):
        try:
            parsed = float(value.strip())
        except ValueError:
            return None
        return parsed if math.isfinite(parsed) else None
    return None


def _int_text(value: float) -> str:
    return str(int(value)) if float(value).is_integer() else str(value)


def format_coins(coins: Any) -> str:
    number = to_number(coins)
    if number is None:
        return "0 coins"
    count = max(0, math.floor(number))
    if count == 0:
        return "0 coins"
    return "1 coin" if count == 1 else f"{count} coins"


def format_viewer_count(count: Any) -> str:
    number = to_number(count)
    if not number:
        return "0 viewers"
    return "1 viewer" if number == 1 else f"{_int_text(number)} viewers"


def format_months(months: Any) -> str:
    number = to_number(months)
    if not number:
        return "0 months"
    return "1 month" if number == 1 else f"{_int_text(number)} months"


def format_ordinal(value: Any) -> str:
    n = abs(math.floor(to_number(value) or 0))
    if 11 <= n % 100 <= 13:
        return f"{n}th"
    return f"{n}" + {1: "st", 2: "nd", 3: "rd"}.get(n % 10, "th")


def format_gift_count(count: Any, gift_type: str) -> str:
    number = to_number(count)
    lowered = gift_type.lower()
    if not number:
        return f"0 {lowered}s"

    count_text = _int_text(number)
    if lowered == "bits":
        return "1 bit" if number == 1 else f"{count_text} bits"
    if lowered.endswith(" bits"):
        cheermote = re.sub(r" bits$", "", gift_type, flags=re.IGNORECASE)
        return f"1 {cheermote} bit" if number == 1 else f"{count_text} {cheermote} bits"

    if number == 1:
        return f"1 {lowered}"
    plural = lowered if lowered.endswith("s") else f"{lowered}s"
    return f"{count_text} {plural}"


def format_gift_count_for_display(count: Any, gift_name: str) -> str:
    number = to_number(count)
    if not number:
        return f"{gift_name} x 0"
    if number == 1:
        return gift_name
    return f"{gift_name} x {_int_text(number)}"


def format_tier_display(tier: Any) -> str:
    if tier is None or tier == "":
        return ""
    tier_text = str(tier).strip()
    if tier_text in ("1000", "1"):
        return ""
    if tier_text == "2000":
        return " (Tier 2)"
    if tier_text == "3000":
        return " (Tier 3)"
    return f" (Tier {tier_text})"


def format_tier_log_suffix(tier: Any) -> str:
    suffix = format_tier_display(tier)
    return suffix.replace("Tier ", "Tier: ") if suffix else ""


def format_level_suffix(level: Any) -> str:
    if not level or level == "Member":
        return ""
    return f" ({level})"


def format_level_log_suffix(level: Any) -> str:
    if not level or level == "Member":
        return ""
    return f" (Level: {level})"


def format_bits_amount(amount: Any) -> str:
    number = to_number(amount) or 0
    if float(number).is_integer():
        return f"{int(number):,}"
    return f"{number:,}"


def format_bits_amount_for_tts(amount: Any) -> str:
    number = int(to_number(amount) or 0)
    if number == 0:
        return "zero"
    if number >= 1000:
        thousands, remainder = divmod(number, 1000)
        if remainder == 0:
            return f"{thousands} thousand"
        return f"{thousands} thousand {remainder}"
    return str(number)


# ======================================================================
# Currency
# ======================================================================

SYMBOL_TO_CODE: Dict[str, str] = {
    "$": "USD",
    "US$": "USD",
    "€": "EUR",
    "£": "GBP",
    "¥": "JPY",
    "₹": "INR",
    "₩": "KRW",
    "CA$": "CAD",
    "A$": "AUD",
    "R$": "BRL",
    "MX$": "MXN",
    "NZ$": "NZD",
    "HK$": "HKD",
    "CN¥": "CNY",
}

# Codes rendered with their own symbol; everything else keeps the ISO code.
UNIQUE_SYMBOLS: Dict[str, str] = {
    "USD": "$",
    "EUR": "€",
    "GBP": "£",
    "JPY": "¥",
    "CNY": "CN¥",
    "INR": "₹",
}

ZERO_DECIMAL_CURRENCIES = {"JPY"}

CURRENCY_WORDS: Dict[str, str] = {
    "USD": "dollars",
    "EUR": "euros",
    "GBP": "pounds",
    "JPY": "yen",
    "CNY": "yuan",
    "INR": "rupees",
    "CAD": "canadian dollars",
    "AUD": "australian dollars",
    "NZD": "new zealand dollars",
    "CHF": "swiss francs",
    "SEK": "swedish krona",
    "NOK": "norwegian kroner",
    "DKK": "danish kroner",
    "PLN": "polish zloty",
    "CZK": "czech koruna",
    "HUF": "hungarian forint",
    "RON": "romanian leu",
    "TRY": "turkish lira",
    "ILS": "israeli shekels",
    "AED": "emirati dirhams",
    "SAR": "saudi riyals",
    "EGP": "egyptian pounds",
    "ZAR": "south african rand",
    "NGN": "nigerian naira",
    "KES": "kenyan shillings",
    "BRL": "brazilian reais",
    "ARS": "argentine pesos",
    "CLP": "chilean pesos",
    "COP": "colombian pesos",
    "PEN": "peruvian soles",
    "UYU": "uruguayan pesos",
    "DOP": "dominican pesos",
    "MXN": "mexican pesos",
    "KRW": "korean won",
    "TWD": "taiwan dollars",
    "HKD": "hong kong dollars",
    "SGD": "singapore dollars",
    "MYR": "malaysian ringgit",
    "THB": "thai baht",
    "VND": "vietnamese dong",
    "IDR": "indonesian rupiah",
    "PHP": "philippine pesos",
    "PKR": "pakistani rupees",
    "RUB": "russian rubles",
    "UAH": "ukrainian hryvnias",
}

SINGULAR_CURRENCY_WORDS: Dict[str, str] = {
    "yen": "yen",
    "yuan": "yuan",
    "korean won": "korean won",
    "brazilian reais": "brazilian real",
    "swiss francs": "swiss franc",
}


def normalize_currency(currency: Any) -> str:
    """Map symbols to ISO codes; `coins` and `bits` stay lowercase."""
    text = str(currency or "").strip()
    lowered = text.lower()
    if lowered in ("coins", "bits"):
        return lowered
    if text in SYMBOL_TO_CODE:
        return SYMBOL_TO_CODE[text]
    return text.upper()


def is_fiat_currency(currency: Any) -> bool:
    normalized = normalize_currency(currency)
    return bool(normalized) and normalized not in ("coins", "bits")


def format_currency(amount: float, currency: str) -> str:
    code = normalize_currency(currency)
    decimals = 0 if code in ZERO_DECIMAL_CURRENCIES else 2
    number = f"{amount:,.{decimals}f}"
    symbol = UNIQUE_SYMBOLS.get(code)
    if symbol:
        return f"{symbol}{number}"
    return f"{code} {number}"


def get_currency_word(currency: str) -> str:
    code = normalize_currency(currency)
    return CURRENCY_WORDS.get(code, code)


def get_singular_currency(word: str) -> str:
    if word in SINGULAR_CURRENCY_WORDS:
        return SINGULAR_CURRENCY_WORDS[word]
    return word[:-1] if word.endswith("s") else word


def format_currency_for_tts(amount: Any, currency: str) -> str:
    number = to_number(amount)
    if not number:
        return "0"

    word = get_currency_word(currency)
    main = math.floor(number)
    sub = round((number - main) * 100)
    if sub >= 100:
        main, sub = main + 1, 0

    if sub == 0:
        return f"1 {get_singular_currency(word)}" if main == 1 else f"{main} {word}"
    return f"{main} {word} {sub}"


# ======================================================================
# Usernames
# ======================================================================

_TTS_STRIP = re.compile(
    "["
    "\U0001F000-\U0001FAFF"  # emoji, pictographs, symbols
    "\u2190-\u21FF"  # arrows
    "\u2300-\u23FF"  # misc technical
    "\u25A0-\u27BF"  # shapes, misc symbols, dingbats
    "\u2B00-\u2BFF"  # stars and arrows
    "\u200d\ufe0f"  # joiners and variation selectors
    "]+"
)
_DIGIT_RUN = re.compile(r"\d+")

MAX_DISPLAY_USERNAME = 40
MAX_TTS_USERNAME = 50


def sanitize_username_for_tts(username: Any, max_length: Optional[int] = None) -> str:
    """Drop emoji and symbols, keep the first digit of each number run."""
    if not isinstance(username, str) or not username.strip():
        return ""

    cleaned = _TTS_STRIP.sub("", username)
    cleaned = _DIGIT_RUN.sub(lambda m: m.group(0)[0], cleaned).strip()
    cleaned = re.sub(r"\s{2,}", " ", cleaned)

    limit = max_length or MAX_TTS_USERNAME
    if len(cleaned) > limit:
        cleaned = cleaned[:limit].rstrip()
    return cleaned or username.strip()


def truncate_username(username: Any, max_length: int = MAX_DISPLAY_USERNAME) -> str:
    name = username if isinstance(username, str) else ""
    if len(name) <= max_length:
        return name
    return name[: max_length - 3] + "..."


__all__ = [
    "NOTIFICATION_TEMPLATES",
    "PAYPIGGY_TEMPLATES",
    "resolve_paypiggy_copy",
    "to_number",
    "format_coins",
    "format_viewer_count",
    "format_months",
    "format_ordinal",
    "format_gift_count",
    "format_gift_count_for_display",
    "format_tier_display",
    "format_tier_log_suffix",
    "format_level_suffix",
    "format_level_log_suffix",
    "format_bits_amount",
    "format_bits_amount_for_tts",
    "normalize_currency",
    "is_fiat_currency",
    "format_currency",
    "get_currency_word",
    "get_singular_currency",
    "format_currency_for_tts",
    "sanitize_username_for_tts",
    "truncate_username",
]
