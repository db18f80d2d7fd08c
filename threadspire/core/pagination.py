"""Page/limit validation shared by every list operation."""

import math
from typing import Optional, Tuple

from threadspire.core.config import settings
from threadspire.core.errors import ValidationError


def resolve_page(page: Optional[int] = 1, limit: Optional[int] = None) -> Tuple[int, int, int]:
    """
    Validate paging input.

    Returns:
        (page, limit, skip)

    Raises:
        ValidationError: page < 1 or limit outside 1..MAX_PAGE_SIZE
    """
    page = 1 if page is None else page
    limit = settings.DEFAULT_PAGE_SIZE if limit is None else limit
    if page < 1:
        raise ValidationError("page must be >= 1")
    if limit < 1 or limit > settings.MAX_PAGE_SIZE:
        raise ValidationError(f"limit must be between 1 and {settings.MAX_PAGE_SIZE}")
    return page, limit, (page - 1) * limit


def page_count(total: int, limit: int) -> int:
    return math.ceil(total / limit) if total else 0
