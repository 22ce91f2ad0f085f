MASK_CHAR = "•"
VISIBLE_PREFIX_LEN = 3
MASKED_SUFFIX = MASK_CHAR * 12
FULLY_MASKED = MASK_CHAR * 4


def mask_secret(secret: str) -> str:
    """First 3 characters of the secret followed by a fixed run of bullets."""
    if len(secret) <= VISIBLE_PREFIX_LEN:
        return FULLY_MASKED
    return secret[:VISIBLE_PREFIX_LEN] + MASKED_SUFFIX
