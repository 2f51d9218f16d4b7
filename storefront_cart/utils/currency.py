# storefront_cart/utils/currency.py


def _group_indian(rupees: int) -> str:
    """12345678 -> '1,23,45,678' (last three digits, then pairs)."""
    digits = str(rupees)
    if len(digits) <= 3:
        return digits

    head, tail = digits[:-3], digits[-3:]
    groups = []
    while len(head) > 2:
        groups.insert(0, head[-2:])
        head = head[:-2]
    if head:
        groups.insert(0, head)
    return ",".join(groups + [tail])


def format_rupees_number(minor_units: int) -> str:
    sign = "-" if minor_units < 0 else ""
    rupees, paise = divmod(abs(minor_units), 100)
    return f"{sign}{_group_indian(rupees)}.{paise:02d}"


def format_rupees(minor_units: int) -> str:
    """Price in paise rendered as e.g. '₹1,59,800.00'."""
    number = format_rupees_number(minor_units)
    if number.startswith("-"):
        return f"-₹{number[1:]}"
    return f"₹{number}"
