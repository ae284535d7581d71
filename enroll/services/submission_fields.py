"""Best-effort field discovery over schema-less submission data.

Forms are built per tenant, so the same concept shows up under different
keys ("telefone", "phone", "celular_whatsapp", ...). Each accessor tries an
ordered list of exact keys, then falls back to the first key containing one
of a set of substrings.
"""

import re
from decimal import Decimal, InvalidOperation

PHONE_KEYS = ("telefone", "phone", "celular", "whatsapp", "telefone_celular")
PHONE_HINTS = ("telefone", "phone", "celular", "whatsapp")

EMAIL_KEYS = ("email", "contato_email", "email_contato", "e_mail")
EMAIL_HINTS = ("email", "e_mail")

NAME_KEYS = ("nome_completo", "nome", "name", "full_name")
NAME_HINTS = ("nome", "name")

COURSE_KEYS = ("curso", "course")
COURSE_HINTS = ("curso", "course")

_NON_DIGITS = re.compile(r"\D")


def _usable(value):
    if value is None:
        return False
    if isinstance(value, str):
        return value.strip() != ""
    return isinstance(value, (int, float))


def pick_field(data, keys, hints=()):
    """Return the first usable value for `keys`, then for keys containing `hints`.

    Matching is case-insensitive. Returns a stripped string, or None.
    """
    if not data:
        return None

    lowered = {str(k).lower(): v for k, v in data.items()}

    for key in keys:
        value = lowered.get(key)
        if _usable(value):
            return str(value).strip()

    for hint in hints:
        for key, value in lowered.items():
            if hint in key and _usable(value):
                return str(value).strip()

    return None


def get_phone(data):
    return pick_field(data, PHONE_KEYS, PHONE_HINTS)


def get_email(data):
    value = pick_field(data, EMAIL_KEYS, EMAIL_HINTS)
    if value and "@" in value:
        return value
    return None


def get_name(data):
    return pick_field(data, NAME_KEYS, NAME_HINTS)


def get_course(data):
    return pick_field(data, COURSE_KEYS, COURSE_HINTS)


def normalize_phone(raw):
    """Digits-only international form for the WhatsApp gateway.

    11 digits (DDD + mobile)       -> prefixed with country code 55
    13 digits already starting 55  -> unchanged
    anything else                  -> digits unchanged
    """
    digits = _NON_DIGITS.sub("", str(raw or ""))
    if len(digits) == 11:
        return f"55{digits}"
    return digits


def format_amount(amount):
    """'150.00' — plain two-decimal amount for templates and payloads."""
    if amount is None:
        return "0.00"
    try:
        return f"{Decimal(str(amount)):.2f}"
    except (InvalidOperation, ValueError):
        return "0.00"


def format_brl(amount):
    """'R$ 1.234,56' — Brazilian currency display."""
    plain = format_amount(amount)
    whole, cents = plain.split(".")
    negative = whole.startswith("-")
    whole = whole.lstrip("-")
    groups = []
    while len(whole) > 3:
        groups.insert(0, whole[-3:])
        whole = whole[:-3]
    groups.insert(0, whole)
    return f"{'-' if negative else ''}R$ {'.'.join(groups)},{cents}"
