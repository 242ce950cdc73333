import re

_NON_ALNUM = re.compile(r"[^A-Za-z0-9]")


def sanitize_vin(text) -> str:
    """
    Reduce a VIN / serial / plate string to the token used in blob paths:
    ASCII letters and digits only, uppercased.
    """
    if text is None:
        return ""
    return _NON_ALNUM.sub("", str(text).strip()).upper()
